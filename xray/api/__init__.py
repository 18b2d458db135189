"""HTTP acceptance boundary of the X-Ray service."""
