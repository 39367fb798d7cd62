import base64
import datetime
import io
import zipfile

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from credentials import StaticSecretProvider
from signer_engine import SignerEngine

SIGNED_SUFFIX = b'--signed--'

class FakeSigner(SignerEngine):
    """Stands in for offsign.bat: records jobs and appends a marker to the file."""

    def __init__(self, output='Successfully signed and verified', modify=True, error=None):
        self.output = output
        self.modify = modify
        self.error = error
        self.jobs = []
        self.seen_paths = []

    def sign_and_verify(self, job):
        self.jobs.append(job)
        self.seen_paths.append(job.file_path)
        if self.error is not None:
            raise self.error
        if self.modify:
            with open(job.file_path, 'ab') as f:
                f.write(SIGNED_SUFFIX)
        return self.output

@pytest.fixture
def fake_signer():
    return FakeSigner()

@pytest.fixture
def no_secrets():
    return StaticSecretProvider()

def b64(data):
    return base64.b64encode(data).decode('ascii')

CONTENT_TYPES = (
    '<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
    '<Types xmlns="http://schemas.openxmlformats.org/package/2006/content-types">'
    '<Default Extension="rels" ContentType="application/vnd.openxmlformats-package.relationships+xml"/>'
    '<Default Extension="xml" ContentType="application/xml"/>'
    '<Default Extension="bin" ContentType="application/vnd.ms-office.vbaProject"/>'
    '{overrides}'
    '</Types>'
)

SIGNATURE_TYPES = {
    'legacy': ('vbaProjectSignature.bin',
               'application/vnd.ms-office.vbaProjectSignature',
               'http://schemas.microsoft.com/office/2006/relationships/vbaProjectSignature'),
    'agile': ('vbaProjectSignatureAgile.bin',
              'application/vnd.ms-office.vbaProjectSignatureAgile',
              'http://schemas.microsoft.com/office/2014/relationships/vbaProjectSignatureAgile'),
    'v3': ('vbaProjectSignatureV3.bin',
           'application/vnd.ms-office.vbaProjectSignatureV3',
           'http://schemas.microsoft.com/office/2020/07/relationships/vbaProjectSignatureV3'),
}

def make_ooxml(macros=True, signatures=()):
    """Build a minimal Office OpenXML package in memory."""
    overrides = ''
    for name in signatures:
        part, media_type, _ = SIGNATURE_TYPES[name]
        overrides += '<Override PartName="/xl/{}" ContentType="{}"/>'.format(part, media_type)

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr('[Content_Types].xml', CONTENT_TYPES.format(overrides=overrides))
        zf.writestr('xl/workbook.xml', '<workbook/>')
        if macros:
            zf.writestr('xl/vbaProject.bin', b'\xd0\xcf\x11\xe0fake vba project')
        if signatures:
            rels = ('<?xml version="1.0" encoding="UTF-8" standalone="yes"?>'
                    '<Relationships xmlns="http://schemas.openxmlformats.org/package/2006/relationships">')
            for i, name in enumerate(signatures):
                part, _, rtype = SIGNATURE_TYPES[name]
                rels += '<Relationship Id="rId{}" Target="{}" Type="{}"/>'.format(i + 1, part, rtype)
                zf.writestr('xl/' + part, b'signature')
            rels += '</Relationships>'
            zf.writestr('xl/_rels/vbaProject.bin.rels', rels)
    return buffer.getvalue()

def make_pfx(password, days=365):
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, 'Test Macro Signer')])
    now = datetime.datetime.now(datetime.timezone.utc)
    if days > 0:
        not_before, not_after = now - datetime.timedelta(days=1), now + datetime.timedelta(days=days)
    else:
        not_before, not_after = now - datetime.timedelta(days=10), now + datetime.timedelta(days=days)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )
    return pkcs12.serialize_key_and_certificates(
        b'signer', key, certificate, None,
        serialization.BestAvailableEncryption(password.encode('utf8')))

@pytest.fixture
def pfx_file(tmp_path):
    path = tmp_path / 'signer.pfx'
    path.write_bytes(make_pfx('s3cret'))
    return str(path)
