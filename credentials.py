
# Decide how signtool will reach the private key: a PFX file plus its
# password, or a certificate already installed in the machine store and
# selected by issuer and subject substrings.

import logging
logger = logging.getLogger(__name__)

import os
from datetime import datetime, timezone

from cryptography.hazmat.primitives.serialization import pkcs12
from pydantic import SecretStr

from errors import NoValidCredentialError

DEFAULT_PASSWORD_VARIABLE = 'LocalCertPassword'

class FileCredential:

    kind = 'file'

    def __init__(self, path, password):
        if not isinstance(password, SecretStr):
            password = SecretStr(password)
        self.path = path
        self.password = password

    def __repr__(self):
        return "FileCredential(path={!r}, password={!r})".format(self.path, self.password)

class StoreCredential:

    kind = 'store'

    def __init__(self, issuer, subject):
        self.issuer = issuer
        self.subject = subject

    def __repr__(self):
        return "StoreCredential(issuer={!r}, subject={!r})".format(self.issuer, self.subject)

# Secret lookup by name. On the automation host this is where the
# certificate password lives when the caller does not send one.

class SecretProvider:

    def get_by_name(self, name):
        raise NotImplementedError

class EnvironmentSecretProvider(SecretProvider):

    def __init__(self, prefix=''):
        self.prefix = prefix

    def get_by_name(self, name):
        value = os.environ.get(self.prefix + name)
        return SecretStr(value) if value else None

class StaticSecretProvider(SecretProvider):

    def __init__(self, secrets=None):
        self.secrets = dict(secrets or {})

    def get_by_name(self, name):
        value = self.secrets.get(name)
        if value is None or isinstance(value, SecretStr):
            return value
        return SecretStr(value)

def _present(value):
    if value is None:
        return False
    if isinstance(value, SecretStr):
        return len(value.get_secret_value()) > 0
    return len(value) > 0

def resolve_password(cert_password, secret_provider=None, password_variable=DEFAULT_PASSWORD_VARIABLE):
    # 1. a protected secret from the caller
    if isinstance(cert_password, SecretStr):
        if _present(cert_password):
            logger.debug("Using caller supplied protected password")
            return cert_password
        cert_password = None

    # 2. the host's secret store
    if secret_provider is not None:
        secret = secret_provider.get_by_name(password_variable)
        if _present(secret):
            logger.debug("Using password from secret {}".format(password_variable))
            return secret if isinstance(secret, SecretStr) else SecretStr(secret)
        logger.debug("Secret {} not available".format(password_variable))

    # 3. whatever the caller sent, as plain text
    if _present(cert_password):
        logger.debug("Using caller supplied plain password")
        return SecretStr(cert_password)

    return None

def load_pfx_certificate(path, password):
    try:
        with open(path, 'rb') as f:
            data = f.read()
    except OSError as e:
        raise NoValidCredentialError("Cannot read certificate file {}: {}".format(path, e.strerror))

    try:
        private_key, certificate, additional = pkcs12.load_key_and_certificates(
            data, password.get_secret_value().encode('utf8'))
    except ValueError:
        raise NoValidCredentialError("Cannot open certificate file {}, wrong password or not a PFX".format(path))

    if private_key is None or certificate is None:
        raise NoValidCredentialError("Certificate file {} has no private key".format(path))

    logger.info("Signing certificate is {}".format(certificate.subject.rfc4514_string()))
    if certificate.not_valid_after_utc < datetime.now(timezone.utc):
        logger.warning("Signing certificate in {} expired on {}".format(
            path, certificate.not_valid_after_utc.isoformat()))
    return certificate

def resolve_credential(cert_path=None, cert_password=None, cert_issuer=None, cert_name=None,
                       secret_provider=None, password_variable=DEFAULT_PASSWORD_VARIABLE,
                       check_certificate=False):

    if cert_path:
        if cert_issuer or cert_name:
            logger.warning("Both a certificate file and a store lookup were given, using the file")
        password = resolve_password(cert_password, secret_provider, password_variable)
        if password is None:
            raise NoValidCredentialError("No password available for certificate file {}".format(cert_path))
        if check_certificate:
            load_pfx_certificate(cert_path, password)
        return FileCredential(cert_path, password)

    if cert_issuer and cert_name:
        return StoreCredential(cert_issuer, cert_name)

    if cert_issuer or cert_name:
        raise NoValidCredentialError("Certificate store lookup needs both issuer and subject name")
    raise NoValidCredentialError("No certificate file or certificate store lookup given")
