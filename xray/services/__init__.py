"""Business services of the X-Ray trail service."""
