
import logging
logger = logging.getLogger(__name__)

import ntpath
import os
import signal
import subprocess
from enum import Enum

from errors import InvalidRequestError, SigningToolError

REDACTED = '**********'
VERIFY_ARGUMENTS = 'verify /pa'

class DigestAlgorithm(Enum):
    SHA1 = 'SHA1'
    SHA256 = 'SHA256'

    def __str__(self):
        return self.value

    @classmethod
    def parse(cls, value):
        if isinstance(value, cls):
            return value
        if value is None:
            return cls.SHA256
        try:
            return cls(str(value).strip().upper().replace('-', ''))
        except ValueError:
            raise InvalidRequestError("Unsupported file digest algorithm {}".format(value))

def sign_arguments(credential, digest_algorithm, reveal=True):
    digest_algorithm = DigestAlgorithm.parse(digest_algorithm)
    if credential.kind == 'file':
        password = credential.password.get_secret_value() if reveal else REDACTED
        return 'sign /f "{}" /p "{}" /fd "{}"'.format(credential.path, password, digest_algorithm)
    elif credential.kind == 'store':
        return 'sign /i "{}" /n "{}" /sm /fd "{}"'.format(credential.issuer, credential.subject, digest_algorithm)
    else:
        raise ValueError("Unknown credential kind {}".format(credential.kind))

def check_output(output, marker):
    # A zero exit status from offsign.bat does not mean the file verified
    if marker and marker in output:
        logger.error("Signer output contains '{}'".format(marker))
        raise SigningToolError(output)
    return output

class SigningJob:

    def __init__(self, file_path, credential, digest_algorithm='SHA256',
                 sign_tool_path='', windows_kits_path=''):
        self.file_path = file_path
        self.credential = credential
        self.digest_algorithm = DigestAlgorithm.parse(digest_algorithm)
        self.sign_tool_path = sign_tool_path or ''
        self.windows_kits_path = windows_kits_path or ''

class SignerEngine:

    def sign_and_verify(self, job):
        raise NotImplementedError

class OffSignSignerEngine(SignerEngine):
    """
    Runs the offsign.bat wrapper shipped with the Office SIPs.

    offsign.bat takes the folder holding signtool.exe, the signtool sign
    arguments, the signtool verify arguments and the file, signs the file
    in place and verifies it. Output is returned as text; deciding whether
    it means failure is left to check_output().
    """

    # Seconds to wait for leftover output once the process tree is killed
    KILL_GRACE = 5

    def __init__(self, wrapper='offsign.bat', timeout=None, windows=None):
        self.wrapper = wrapper
        self.timeout = timeout
        self.windows = (os.name == 'nt') if windows is None else windows

    def wrapper_path(self, job):
        return os.path.join(job.sign_tool_path, self.wrapper)

    def build_command(self, job, reveal=True):
        # offsign.bat concatenates the tool root and signtool.exe
        tool_root = ntpath.join(job.windows_kits_path, '')
        return [
            self.wrapper_path(job),
            tool_root,
            sign_arguments(job.credential, job.digest_algorithm, reveal=reveal),
            VERIFY_ARGUMENTS,
            job.file_path,
        ]

    def command_line(self, job, reveal=True):
        """
        The command line cmd.exe gets on Windows.

        Each argument is wrapped in plain double quotes and the quotes inside
        the sign arguments are left alone, the way offsign.bat expects them.
        A list would go through C runtime quoting, which turns them into \\"
        and batch files do not undo that. /s makes cmd.exe strip only the
        outermost pair of quotes.
        """
        inner = ' '.join('"{}"'.format(arg) for arg in self.build_command(job, reveal=reveal))
        return '{} /s /c "{}"'.format(os.environ.get('COMSPEC', 'cmd.exe'), inner)

    def kill_tree(self, process):
        # offsign.bat starts signtool.exe, which inherits the output pipe
        logger.debug("Killing process tree of {}".format(process.pid))
        if self.windows:
            subprocess.run(
                ['taskkill', '/T', '/F', '/PID', str(process.pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                check=False)
        else:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except OSError:
                process.kill()

    def sign_and_verify(self, job):
        wrapper = self.wrapper_path(job)
        if not os.path.isfile(wrapper):
            raise SigningToolError("Signing wrapper {} not found".format(wrapper))

        if self.windows:
            command = self.command_line(job)
            logger.debug("Running {}".format(self.command_line(job, reveal=False)))
            options = dict()
        else:
            command = self.build_command(job)
            logger.debug("Running {}".format(self.build_command(job, reveal=False)))
            options = dict(start_new_session=True)

        try:
            process = subprocess.Popen(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors='replace',
                **options)
        except OSError as e:
            raise SigningToolError("Cannot run {}: {}".format(wrapper, e))

        try:
            output, _ = process.communicate(timeout=self.timeout)
        except subprocess.TimeoutExpired:
            self.kill_tree(process)
            try:
                output, _ = process.communicate(timeout=self.KILL_GRACE)
            except subprocess.TimeoutExpired:
                logger.warning("No output from {} after killing it".format(wrapper))
                output = ''
            message = "{} did not finish within {} seconds".format(wrapper, self.timeout)
            if output:
                message += "\n" + output
            raise SigningToolError(message)

        output = output or ''
        logger.debug("{} exited with {}".format(wrapper, process.returncode))
        logger.debug(output)
        if process.returncode != 0:
            logger.warning("{} exited with status {}".format(wrapper, process.returncode))
        return output
