
# Office document kinds accepted by the Office SIPs.
#
# MSOSIP handles the legacy binary formats, MSOSIPX the macro-enabled
# Office OpenXML ones. Only files whose extension appears here are ever
# handed to offsign.bat.

import logging
logger = logging.getLogger(__name__)

import os
from collections import OrderedDict, namedtuple
from types import MappingProxyType

from errors import UnsupportedExtensionError

MSOSIP = 'MSOSIP'
MSOSIPX = 'MSOSIPX'

CAPABILITY_TABLE = MappingProxyType(OrderedDict([
    (MSOSIP, MappingProxyType(OrderedDict([
        ('Excel', ('.xla', '.xls', '.xlt')),
        ('PowerPoint', ('.pot', '.ppa', '.pps', '.ppt')),
        ('Project', ('.mpp', '.mpt')),
        ('Publisher', ('.pub',)),
        ('Visio', ('.vdw', '.vdx', '.vsd', '.vss', '.vst', '.vsx', '.vtx')),
        ('Word', ('.doc', '.dot', '.wiz')),
    ]))),
    (MSOSIPX, MappingProxyType(OrderedDict([
        ('Excel', ('.xlam', '.xlsb', '.xlsm', '.xltm')),
        ('PowerPoint', ('.potm', '.ppam', '.ppsm', '.pptm')),
        ('Visio', ('.vsdm', '.vssm', '.vstm')),
        ('Word', ('.docm', '.dotm')),
    ]))),
]))

DocumentKind = namedtuple('DocumentKind', ['family', 'application', 'extension'])

def _flatten(table):
    flat = dict()
    for family, applications in table.items():
        for application, extensions in applications.items():
            for extension in extensions:
                # First entry wins, the groups are disjoint anyway
                flat.setdefault(extension, DocumentKind(family, application, extension))
    return MappingProxyType(flat)

SUPPORTED_EXTENSIONS = _flatten(CAPABILITY_TABLE)

def document_kind(file_name):
    """Return the DocumentKind for file_name, or None when unsupported."""
    extension = os.path.splitext(file_name)[1].lower()
    return SUPPORTED_EXTENSIONS.get(extension)

def validate_extension(file_name):
    kind = document_kind(file_name)
    if kind is None:
        logger.debug("Rejecting {}, extension not in any SIP family".format(file_name))
        raise UnsupportedExtensionError(file_name)
    logger.debug("{} is {} {} ({})".format(file_name, kind.family, kind.application, kind.extension))
    return kind

def is_ooxml(kind):
    return kind.family == MSOSIPX
