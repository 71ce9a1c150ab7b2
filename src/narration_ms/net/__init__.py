"""
Outbound networking.

    - http_client.py: ResilientHttpClient (timeout, retry, backoff, classification)
"""
