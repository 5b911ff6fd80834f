# -----------------------------------------------------------------------------
# Copyright (c) 2025 vSAN Perf Collector contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

import logging
import ssl
import requests
import urllib3
from urllib3.util.ssl_ import create_urllib3_context
from urllib3 import PoolManager
from requests.adapters import HTTPAdapter

LOG = logging.getLogger(__name__)

TLS_VALIDATION_MODES = ('strict', 'normal', 'none')


class SSLAdapter(HTTPAdapter):
    """An HTTPS Transport Adapter that uses an explicit SSL context."""
    def __init__(self, verify_flags=ssl.VERIFY_X509_STRICT, **kwargs):
        self.verify_flags = verify_flags
        super().__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        context = create_urllib3_context(verify_flags=self.verify_flags)
        self.poolmanager = PoolManager(num_pools=connections, maxsize=maxsize,
                                       block=block, ssl_context=context, **pool_kwargs)


def normalize_endpoint(vcenter):
    """
    Turn a vCenter host name or URL into an https base URL without a trailing slash.

    Plain HTTP is never used: an http:// prefix is rewritten to https://.
    """
    endpoint = vcenter.strip().rstrip('/')
    if endpoint.startswith('http://'):
        LOG.warning(f"Ignoring plain HTTP scheme for {endpoint}, using HTTPS")
        endpoint = 'https://' + endpoint[len('http://'):]
    elif not endpoint.startswith('https://'):
        endpoint = f'https://{endpoint}'
    return endpoint


def get_session(username, password, tls_ca=None, tls_validation='strict', pool_size=10):
    """
    Return a requests.Session configured for the vCenter management API.

    Args:
        username: vCenter user, used for the initial session login
        password: Password for username
        tls_ca: CA bundle file or directory used to verify the server certificate
        tls_validation: 'strict', 'normal', or 'none'
        pool_size: Connection pool size; one connection per collection thread

    Returns:
        requests.Session with basic auth credentials and JSON headers
    """
    if tls_validation not in TLS_VALIDATION_MODES:
        raise ValueError(f"tls_validation must be one of {TLS_VALIDATION_MODES}, got {tls_validation}")

    session = requests.Session()
    if tls_validation == 'none':
        urllib3.disable_warnings()
        session.verify = False
        session.mount("https://", HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size))
        LOG.warning("TLS validation is DISABLED (verify=False). This is insecure and should only be used for testing.")
    else:
        verify_flags = ssl.VERIFY_X509_STRICT if tls_validation == 'strict' else ssl.VERIFY_DEFAULT
        session.mount("https://", SSLAdapter(verify_flags=verify_flags,
                                            pool_connections=pool_size, pool_maxsize=pool_size))
        if tls_ca:
            session.verify = tls_ca
        else:
            session.verify = True

    session.auth = (username, password)
    session.headers.update({
        "Accept": "application/json",
        "Content-Type": "application/json"
    })
    return session
