"""
TLS context creation.

The server-side context is built once at startup and shared by every
Session. Each Session runs its own handshake against it.
"""

import logging
import ssl


logger = logging.getLogger(__name__)


def create_server_context(certfile: str, keyfile: str) -> ssl.SSLContext:
    """
    Build a TLS 1.2+ server context from a PEM certificate chain and key.

    SSLv2/SSLv3/TLS 1.0/TLS 1.1 are refused, compression is off, and a
    fresh ECDH key is used per handshake (OpenSSL's defaults for
    PROTOCOL_TLS_SERVER).

    Raises:
        FileNotFoundError: A file does not exist.
        ssl.SSLError: The certificate or key cannot be loaded, or they
                      do not match.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.options |= ssl.OP_NO_COMPRESSION | ssl.OP_SINGLE_ECDH_USE

    context.load_cert_chain(certfile=certfile, keyfile=keyfile)
    logger.debug(f"Loaded certificate chain from {certfile}")
    return context
