#!/usr/bin/env python3

import sys
import os
import json
import logging

logger = logging.getLogger(__name__)

import argparse
import getpass
import base64

from pydantic import SecretStr

import config
from dispatcher import Dispatcher, SigningRequest
from errors import SigningError
from extensions import document_kind, is_ooxml
from ooxml import OfficeOpenXML
from signer_engine import DigestAlgorithm, OffSignSignerEngine

# Operations:

# check: Tells whether a file can be signed at all and, for Office
#	OpenXML files, whether it carries macros and which signatures.
# sign: Signs a local file through offsign.bat. The file is signed in
#	place; with --output the signed bytes are also copied there.
# handle: Runs one request given as runbook parameters in JSON, from a
#	file or stdin, and prints the JSON result.

def check(filename):
    kind = document_kind(filename)
    if kind is None:
        print("{}: not a supported Office document".format(filename))
        return 1

    print("{}: {} {} ({})".format(filename, kind.application, kind.extension, kind.family))
    if is_ooxml(kind):
        try:
            oxml = OfficeOpenXML(filename)
        except (ValueError, OSError) as e:
            print("ERROR: cannot read {}: {}".format(filename, e))
            return 1
        print("{}: {}".format(filename, oxml.describe()))
    return 0

def password_from_args(args):
    if args.password_env:
        value = os.environ.get(args.password_env)
        if not value:
            print("Environment variable {} is empty".format(args.password_env))
            return None
        return SecretStr(value)
    if sys.stdin.isatty():
        value = getpass.getpass('Password for {}: '.format(args.cert_file))
        if len(value):
            return SecretStr(value)
    # Falls back to the secret store
    return None

def emit(result, output_filename=None):
    if output_filename and result.ok:
        with open(output_filename, 'wb') as f:
            f.write(base64.b64decode(result.body))
        print("Signed file written to {}".format(output_filename))
    else:
        print(json.dumps(result.to_dict()))
    return 0 if result.ok else 1

def sign(args, dispatcher):
    if not args.cert_file and not (args.issuer and args.subject):
        print("A certificate file or both --issuer and --subject are required")
        return 2

    cert_password = password_from_args(args) if args.cert_file else None

    directory, file_name = os.path.split(os.path.abspath(args.input))
    try:
        request = SigningRequest(
            file_name,
            local_file_path=directory,
            cert_path=args.cert_file,
            cert_password=cert_password,
            cert_issuer=args.issuer,
            cert_name=args.subject,
            digest_algorithm=args.digest,
            sign_tool_path=args.sign_tool_path,
            windows_kits_path=args.windows_kits_path)
    except SigningError as e:
        print("ERROR: {}".format(e))
        return 2

    return emit(dispatcher.dispatch(request), args.output)

def handle(args, dispatcher):
    if args.input:
        with open(args.input, 'r', encoding='utf8') as f:
            text = f.read()
    else:
        text = sys.stdin.read()

    try:
        parameters = json.loads(text)
    except ValueError as e:
        print("ERROR: request is not JSON: {}".format(e))
        return 2
    if not isinstance(parameters, dict):
        print("ERROR: request must be a JSON object")
        return 2

    return emit(dispatcher.handle(parameters))

def build_parser():

    parser = argparse.ArgumentParser(
        description="Sign macro-enabled Office documents with the Office SIPs",
    )

    parser.add_argument('command',
                        type=str,
                        choices=['check', 'sign', 'handle'],
                        help='Command to execute',
                        )

    parser.add_argument('-d', '--debug',
                        action='store_true',
                        help='Show debug information',
                        )

    parser.add_argument('-i', '-in', '--input',
                        type=str,
                        help='Path to input Office file, or JSON request for handle',
                        )

    parser.add_argument('-o', '-out', '--output',
                        type=str,
                        help='Where to copy the signed file',
                        )

    parser.add_argument('--cert-file',
                        type=str,
                        help='Path to signer PFX file',
                        )

    parser.add_argument('--password-env',
                        type=str,
                        help='Environment variable holding the PFX password',
                        )

    parser.add_argument('--issuer',
                        type=str,
                        help='Issuer (or part of it) of the certificate in the machine store',
                        )

    parser.add_argument('--subject',
                        type=str,
                        help='Subject name (or part of it) of the certificate in the machine store',
                        )

    parser.add_argument('--digest',
                        type=str,
                        default=config.DIGEST_ALGORITHM,
                        choices=[d.value for d in DigestAlgorithm],
                        help='File digest algorithm',
                        )

    parser.add_argument('--sign-tool-path',
                        type=str,
                        default=config.SIGN_TOOL_PATH,
                        help='Folder holding offsign.bat',
                        )

    parser.add_argument('--windows-kits-path',
                        type=str,
                        default=config.WINDOWS_KITS_PATH,
                        help='Folder holding signtool.exe',
                        )

    parser.add_argument('--timeout',
                        type=float,
                        default=config.TIMEOUT,
                        help='Seconds to wait for offsign.bat, default waits forever',
                        )

    parser.add_argument('--check-certificate',
                        action='store_true',
                        default=config.CHECK_CERTIFICATE,
                        help='Open the PFX file before signing to validate the password',
                        )

    return parser

def main(argv=None):

    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(level=getattr(logging, config.LOG_LEVEL, logging.WARNING))
    if args.debug:
        logging.getLogger().setLevel(logging.DEBUG)

    command = args.command

    if command == 'check':
        if not args.input:
            print("No input file")
            return 2
        return check(args.input)

    dispatcher = Dispatcher(
        signer=OffSignSignerEngine(wrapper=config.WRAPPER, timeout=args.timeout),
        check_certificate=args.check_certificate)

    if command == 'sign':
        if not args.input:
            print("No input file")
            return 2
        return sign(args, dispatcher)

    return handle(args, dispatcher)

if __name__ == '__main__':
    sys.exit(main())
