
# Look inside an MS Office file of the Office OpenXML variety: does it
# carry a VBA project, and which kinds of VBA signature does it already
# have.

import logging
logger = logging.getLogger(__name__)

from enum import Enum

from opc import OPC

VBA_PROJECT_MEDIA_TYPE = 'application/vnd.ms-office.vbaProject'

class SignatureKind(Enum):
    LEGACY = 1
    AGILE = 2
    V3 = 3

    def __str__(self):
        if self == self.LEGACY:
            return('Legacy')
        elif self == self.AGILE:
            return('Agile')
        else:
            return('V3')

SIGNATURE_RELATIONSHIPS = {
    'http://schemas.microsoft.com/office/2006/relationships/vbaProjectSignature': SignatureKind.LEGACY,
    'http://schemas.microsoft.com/office/2014/relationships/vbaProjectSignatureAgile': SignatureKind.AGILE,
    'http://schemas.microsoft.com/office/2020/07/relationships/vbaProjectSignatureV3': SignatureKind.V3,
}

class OfficeOpenXML:

    def __init__(self, input=None):

        self.vbaProjectPartName = None
        self.signatures = dict()

        with OPC(input) as opc:
            parts = opc.find(VBA_PROJECT_MEDIA_TYPE)
            logger.debug("{} vbaProject part(s) found".format(len(parts)))
            if len(parts) == 1:
                self.vbaProjectPartName = parts[0]
                logger.debug("vbaProject is part name {}".format(self.vbaProjectPartName))
            elif len(parts) > 1:
                raise ValueError("More than one part with media type {} - unsupported".format(VBA_PROJECT_MEDIA_TYPE))

            if self.vbaProjectPartName:
                related = opc.find_related(self.vbaProjectPartName)
                for rtype, target in related.items():
                    kind = SIGNATURE_RELATIONSHIPS.get(rtype)
                    if kind is None:
                        logger.debug("Ignoring relationship {} to {}".format(rtype, target))
                        continue
                    self.signatures[kind] = target

    @property
    def has_macros(self):
        return True if self.vbaProjectPartName else False

    @property
    def has_signed_macros(self):
        return self.has_macros and len(self.signatures) > 0

    @property
    def signature_kinds(self):
        return sorted(self.signatures, key=lambda kind: kind.value)

    def describe(self):
        if not self.has_macros:
            return "no VBA project"
        if not self.has_signed_macros:
            return "VBA project {}, not signed".format(self.vbaProjectPartName)
        return "VBA project {}, signed ({})".format(
            self.vbaProjectPartName, ', '.join(str(k) for k in self.signature_kinds))
