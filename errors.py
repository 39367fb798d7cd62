
# Errors raised while dispatching a document to the signer.
# Every one of them ends up as a 500 result at the dispatcher boundary.

class SigningError(Exception):
    pass

class InvalidRequestError(SigningError):
    pass

class ArtifactWriteError(SigningError):
    pass

class UnsupportedExtensionError(SigningError):

    def __init__(self, file_name):
        super().__init__("File type of {} is not supported for signing".format(file_name))
        self.file_name = file_name

class NoValidCredentialError(SigningError):
    pass

class SigningToolError(SigningError):

    # The message is the captured output, unchanged, so callers can
    # diagnose what offsign.bat complained about
    def __init__(self, output):
        super().__init__(output)
        self.output = output

class UnexpectedError(SigningError):
    pass
