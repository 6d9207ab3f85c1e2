"""Business logic for the proxy: admission, rate limiting and usage statistics."""
