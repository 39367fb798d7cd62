
# Take one document, sign it with offsign.bat and hand back the signed
# bytes. Every request ends in a SigningResult; nothing escapes dispatch().

import logging
logger = logging.getLogger(__name__)

import base64
import binascii
import ntpath
import os
import shutil
import tempfile
from collections import namedtuple
from contextlib import contextmanager
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

import config
from credentials import EnvironmentSecretProvider, resolve_credential
from errors import (ArtifactWriteError, InvalidRequestError, SigningError,
                    UnexpectedError)
from extensions import is_ooxml, validate_extension
from ooxml import OfficeOpenXML
from signer_engine import DigestAlgorithm, OffSignSignerEngine, SigningJob, check_output

def _present(value):
    return value is not None and len(value) > 0

class SigningRequest:

    def __init__(self, file_name, file_stream=None, local_file_path=None,
                 cert_path=None, cert_password=None, cert_issuer=None, cert_name=None,
                 digest_algorithm=None, sign_tool_path=None, windows_kits_path=None):

        if _present(file_stream) == _present(local_file_path):
            raise InvalidRequestError("Exactly one of file stream or local file path is required")

        # Callers send Windows paths as often as POSIX ones
        base_name = ntpath.basename(file_name or '')
        if not base_name or base_name in ('.', '..'):
            raise InvalidRequestError("Invalid file name {!r}".format(file_name))

        # A payload is written into our scratch directory, so only its base
        # name is kept. A local file name is joined to local_file_path as
        # given and may name a subdirectory.
        self.file_name = base_name if _present(file_stream) else file_name
        self.file_stream = file_stream if _present(file_stream) else None
        self.local_file_path = local_file_path if _present(local_file_path) else None
        self.cert_path = cert_path
        self.cert_password = cert_password
        self.cert_issuer = cert_issuer
        self.cert_name = cert_name
        self.digest_algorithm = DigestAlgorithm.parse(digest_algorithm or config.DIGEST_ALGORITHM)
        self.sign_tool_path = sign_tool_path or config.SIGN_TOOL_PATH
        self.windows_kits_path = windows_kits_path or config.WINDOWS_KITS_PATH

    @property
    def from_stream(self):
        return self.file_stream is not None

class RunbookParameters(BaseModel):
    """Parameters as the automation runbook receives them."""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    file_name: str = Field(alias='fileName', min_length=1)
    file_stream: Optional[str] = Field(default=None, alias='fileStream', repr=False)
    local_file_path: Optional[str] = Field(default=None, alias='localFilePath')
    local_cert_path: Optional[str] = Field(default=None, alias='localCertPath')
    local_cert_password: Optional[str] = Field(default=None, alias='localCertPassword', repr=False)
    cert_issuer: Optional[str] = Field(default=None, alias='certIssuer')
    cert_name: Optional[str] = Field(default=None, alias='certName')
    file_digest_algorithm: Optional[str] = Field(default=None, alias='fileDigestAlgorithm')
    sign_tool_path: Optional[str] = Field(default=None, alias='signToolPath')
    windows_kits_path: Optional[str] = Field(default=None, alias='windowsKitsPath')

    def to_request(self):
        return SigningRequest(
            self.file_name,
            file_stream=self.file_stream,
            local_file_path=self.local_file_path,
            cert_path=self.local_cert_path,
            cert_password=self.local_cert_password,
            cert_issuer=self.cert_issuer,
            cert_name=self.cert_name,
            digest_algorithm=self.file_digest_algorithm,
            sign_tool_path=self.sign_tool_path,
            windows_kits_path=self.windows_kits_path)

def request_from_parameters(parameters):
    try:
        return RunbookParameters.model_validate(parameters).to_request()
    except ValidationError as e:
        problems = '; '.join("{}: {}".format('.'.join(str(p) for p in err['loc']), err['msg'])
                             for err in e.errors())
        raise InvalidRequestError("Invalid parameters: {}".format(problems))

class SigningResult(namedtuple('SigningResult', ['status_code', 'body'])):
    __slots__ = ()

    @classmethod
    def success(cls, body):
        return cls(200, body)

    @classmethod
    def failure(cls, message):
        return cls(500, message)

    @property
    def ok(self):
        return self.status_code == 200

    def to_dict(self):
        return {'ResultCode': str(self.status_code), 'Body': self.body}

def decode_payload(file_stream):
    if isinstance(file_stream, bytes):
        file_stream = file_stream.decode('ascii', errors='replace')
    # Payloads often arrive wrapped at 76 columns
    compact = ''.join(file_stream.split())
    try:
        return base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        raise InvalidRequestError("File stream is not valid base64")

@contextmanager
def resolve_input(request, scratch_dir=None):
    """
    Yield the path offsign.bat must sign.

    A base64 payload is written under its own directory in scratch_dir
    and removed with that directory on the way out, whatever happens in
    between. A local file belongs to the caller and is left alone.
    """
    if not request.from_stream:
        path = os.path.join(request.local_file_path, request.file_name)
        if not os.path.isfile(path):
            raise InvalidRequestError("File {} not found".format(path))
        logger.debug("Signing local file {}".format(path))
        yield path
        return

    data = decode_payload(request.file_stream)
    try:
        workdir = tempfile.mkdtemp(prefix='officesign-', dir=scratch_dir)
    except OSError as e:
        raise ArtifactWriteError("Cannot create scratch directory in {}: {}".format(scratch_dir, e.strerror))

    path = os.path.join(workdir, request.file_name)
    try:
        try:
            with open(path, 'wb') as f:
                f.write(data)
        except OSError as e:
            raise ArtifactWriteError("Cannot write {}: {}".format(path, e.strerror))
        logger.debug("Wrote {} bytes to {}".format(len(data), path))
        yield path
    finally:
        try:
            shutil.rmtree(workdir)
            logger.debug("Removed {}".format(workdir))
        except OSError as e:
            logger.warning("Could not remove {}: {}".format(workdir, e))

class Dispatcher:

    def __init__(self, signer=None, secret_provider=None, scratch_dir=None,
                 failure_marker=None, password_variable=None, check_certificate=None):
        if signer is None:
            signer = OffSignSignerEngine(wrapper=config.WRAPPER, timeout=config.TIMEOUT)
        if secret_provider is None:
            secret_provider = EnvironmentSecretProvider(prefix=config.SECRET_PREFIX)
        self.signer = signer
        self.secret_provider = secret_provider
        self.scratch_dir = scratch_dir or config.SCRATCH_DIR
        self.failure_marker = config.FAILURE_MARKER if failure_marker is None else failure_marker
        self.password_variable = password_variable or config.PASSWORD_VARIABLE
        self.check_certificate = config.CHECK_CERTIFICATE if check_certificate is None else check_certificate

    def inspect(self, path, kind):
        if not is_ooxml(kind):
            return None
        try:
            oxml = OfficeOpenXML(path)
        except (ValueError, OSError) as e:
            logger.warning("Cannot inspect {} as Office OpenXML: {}".format(path, e))
            return None
        if not oxml.has_macros:
            logger.warning("{} has no VBA project".format(path))
        elif oxml.has_signed_macros:
            logger.info("{} already signed ({}), signatures will be replaced".format(
                path, ', '.join(str(k) for k in oxml.signature_kinds)))
        return oxml

    def sign(self, request):
        kind = validate_extension(request.file_name)

        with resolve_input(request, self.scratch_dir) as path:
            self.inspect(path, kind)
            credential = resolve_credential(
                cert_path=request.cert_path,
                cert_password=request.cert_password,
                cert_issuer=request.cert_issuer,
                cert_name=request.cert_name,
                secret_provider=self.secret_provider,
                password_variable=self.password_variable,
                check_certificate=self.check_certificate)
            logger.debug("Credential for {} is {!r}".format(request.file_name, credential))

            job = SigningJob(path, credential, request.digest_algorithm,
                             request.sign_tool_path, request.windows_kits_path)
            output = self.signer.sign_and_verify(job)
            check_output(output, self.failure_marker)

            with open(path, 'rb') as f:
                signed = f.read()

        logger.info("Signed {} ({} {}, {} bytes)".format(
            request.file_name, kind.family, kind.application, len(signed)))
        return base64.b64encode(signed).decode('ascii')

    def dispatch(self, request):
        try:
            return SigningResult.success(self.sign(request))
        except SigningError as e:
            logger.error("Signing {} failed: {}".format(request.file_name, e))
            return SigningResult.failure(str(e))
        except Exception as e:
            logger.exception("Unexpected error signing {}".format(request.file_name))
            return SigningResult.failure(str(UnexpectedError("Unexpected error: {}".format(e))))

    def handle(self, parameters):
        try:
            request = request_from_parameters(parameters)
        except SigningError as e:
            logger.error("Rejected request: {}".format(e))
            return SigningResult.failure(str(e))
        return self.dispatch(request)
