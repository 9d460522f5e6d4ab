VERSION = "0.4.0"
API_PREFIX = "/api/v1"
