"""
cert_downloader — WeChat Pay platform certificate downloader.

Fetches the platform certificates from `v3/certificates`, decrypts each
AES-256-GCM envelope with the APIv3 key, verifies the response signature
against the certificates just decrypted, and saves them as PEM files.

Built on the Railway-Oriented Programming Result type for explicit error
handling.
"""

__version__ = "0.1.0"
