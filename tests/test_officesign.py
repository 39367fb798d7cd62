import base64
import io
import json

import pytest

import officesign
from conftest import SIGNED_SUFFIX, FakeSigner, b64, make_ooxml

@pytest.fixture
def fake_engine(monkeypatch):
    signer = FakeSigner()
    monkeypatch.setattr(officesign, 'OffSignSignerEngine', lambda **kwargs: signer)
    return signer

def test_check_ooxml(tmp_path, capsys):
    path = tmp_path / 'Book.xlsm'
    path.write_bytes(make_ooxml(signatures=('legacy',)))
    assert officesign.main(['check', '-i', str(path)]) == 0
    out = capsys.readouterr().out
    assert 'Excel .xlsm (MSOSIPX)' in out
    assert 'signed (Legacy)' in out

def test_check_legacy(tmp_path, capsys):
    path = tmp_path / 'Old.doc'
    path.write_bytes(b'\xd0\xcf\x11\xe0')
    assert officesign.main(['check', '-i', str(path)]) == 0
    assert 'Word .doc (MSOSIP)' in capsys.readouterr().out

def test_check_unsupported(capsys):
    assert officesign.main(['check', '-i', 'notes.txt']) == 1
    assert 'not a supported' in capsys.readouterr().out

def test_sign_local_file_with_store_certificate(tmp_path, fake_engine, capsys):
    path = tmp_path / 'Deck.pptm'
    path.write_bytes(make_ooxml())
    status = officesign.main(['sign', '-i', str(path), '--issuer', 'Sign', '--subject', 'Sign',
                              '--sign-tool-path', 'C:\\OfficeSIP', '--windows-kits-path', 'C:\\Kits'])
    assert status == 0
    result = json.loads(capsys.readouterr().out)
    assert result['ResultCode'] == '200'
    assert base64.b64decode(result['Body']).endswith(SIGNED_SUFFIX)
    assert fake_engine.jobs[0].file_path == str(path)

def test_sign_writes_output(tmp_path, fake_engine, monkeypatch):
    monkeypatch.setenv('PFX_PASSWORD', 'pw')
    path = tmp_path / 'Macro.docm'
    path.write_bytes(make_ooxml())
    out = tmp_path / 'signed.docm'
    status = officesign.main(['sign', '-i', str(path), '-o', str(out),
                              '--cert-file', 'signer.pfx', '--password-env', 'PFX_PASSWORD'])
    assert status == 0
    assert out.read_bytes() == make_ooxml() + SIGNED_SUFFIX
    assert fake_engine.jobs[0].credential.password.get_secret_value() == 'pw'

def test_sign_needs_a_certificate(tmp_path, fake_engine, capsys):
    path = tmp_path / 'Macro.docm'
    path.write_bytes(make_ooxml())
    assert officesign.main(['sign', '-i', str(path)]) == 2
    assert fake_engine.jobs == []

def test_handle_from_stdin(fake_engine, monkeypatch, capsys):
    request = {'fileName': 'Report.pptm', 'fileStream': b64(make_ooxml()),
               'certIssuer': 'Sign', 'certName': 'Sign'}
    monkeypatch.setattr('sys.stdin', io.StringIO(json.dumps(request)))
    assert officesign.main(['handle']) == 0
    assert json.loads(capsys.readouterr().out)['ResultCode'] == '200'

def test_handle_failure_exit_status(tmp_path, fake_engine, capsys):
    request_file = tmp_path / 'request.json'
    request_file.write_text(json.dumps({'fileName': 'notes.txt', 'fileStream': b64(b'hi'),
                                        'certIssuer': 'Sign', 'certName': 'Sign'}))
    assert officesign.main(['handle', '-i', str(request_file)]) == 1
    result = json.loads(capsys.readouterr().out)
    assert result['ResultCode'] == '500'
    assert 'notes.txt' in result['Body']
    assert fake_engine.jobs == []

def test_handle_rejects_non_json(tmp_path, fake_engine):
    request_file = tmp_path / 'request.json'
    request_file.write_text('fileName=Report.pptm')
    assert officesign.main(['handle', '-i', str(request_file)]) == 2
