from __future__ import annotations

import ssl
import typing

ALPN_PROTOCOLS = ["http/1.1"]


def create_ssl_context(
    ca_certs: str | None = None,
    ca_cert_data: str | bytes | None = None,
    cert_file: str | None = None,
    key_file: str | None = None,
    key_password: str | None = None,
    reject_unauthorized: bool = True,
    ssl_minimum_version: ssl.TLSVersion | None = None,
    ciphers: str | None = None,
) -> ssl.SSLContext:
    """Build the client context for HTTPS connections.

    Does the same work as :func:`ssl.create_default_context` and additionally:

    - Disables compression and session tickets
    - Requires TLS 1.2 unless told otherwise
    - Loads the system trust store only when no CA is given

    :param ca_certs:
        Path to a PEM bundle of trusted certificate authorities.
    :param ca_cert_data:
        The same, given as PEM text or DER bytes.
    :param cert_file:
        Client certificate, optionally with its key.
    :param key_file:
        Client private key, when not bundled in ``cert_file``.
    :param reject_unauthorized:
        ``False`` disables certificate and hostname verification.
    :param ssl_minimum_version:
        The minimum version of TLS to be used. Use the 'ssl.TLSVersion' enum for specifying the value.
    :param ciphers:
        Which cipher suites to allow the server to select. Defaults to the
        system configured ciphers.
    :returns:
        Constructed SSLContext object with specified options
    :rtype: SSLContext
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)

    context.minimum_version = ssl_minimum_version or ssl.TLSVersion.TLSv1_2

    if ciphers is not None:
        context.set_ciphers(ciphers)

    # Disable compression to prevent CRIME attacks for OpenSSL 1.0+
    # (issue #309)
    context.options |= ssl.OP_NO_COMPRESSION
    # TLSv1.2 only. Unless set explicitly, do not request tickets.
    context.options |= ssl.OP_NO_TICKET

    # Enable post-handshake authentication for TLS 1.3, see GH #1634. PHA is
    # necessary for conditional client cert authentication with TLS 1.3.
    context.post_handshake_auth = True

    if reject_unauthorized:
        context.check_hostname = True
        context.verify_mode = ssl.CERT_REQUIRED
    else:
        # check_hostname must be cleared before verify_mode can be relaxed.
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE

    if ca_certs or ca_cert_data:
        context.load_verify_locations(
            cafile=ca_certs, cadata=typing.cast(typing.Any, ca_cert_data)
        )
    elif reject_unauthorized:
        context.load_default_certs()

    if cert_file:
        context.load_cert_chain(cert_file, key_file, password=key_password)

    context.set_alpn_protocols(ALPN_PROTOCOLS)

    return context
