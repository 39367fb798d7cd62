# Read an Open Packaging Conventions file (the ZIP container behind
# Office OpenXML documents).
# Part names start with /, zip members don't.
# TBC: part_names must be matched case-insensitively
import logging
logger = logging.getLogger(__name__)

import zipfile
from io import BytesIO
from lxml import etree

CONTENT_TYPES_LOCATION = '[Content_Types].xml'
CONTENT_TYPES_NS = 'http://schemas.openxmlformats.org/package/2006/content-types'
RELATIONSHIPS_NS = 'http://schemas.openxmlformats.org/package/2006/relationships'

class OPC:

    def __init__(self, input=None):

        self.file = None
        self.path = None
        self.zipfile = None
        self._owns_file = False
        self._default_media_types = dict()
        self._media_types = dict()
        self.parts = dict()

        if input is None:
            return

        logger.debug("Input is {}".format(input))
        if hasattr(input, 'read'):
            self.file = input
        elif isinstance(input, bytes):
            self.file = BytesIO(input)
        elif isinstance(input, str):
            self.path = input
            self.file = open(self.path, 'rb')
            self._owns_file = True
        else:
            raise ValueError("Input is unsupported %s" % type(input))
        try:
            self.parse()
        except Exception:
            self.close()
            raise

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    def close(self):
        if self.zipfile is not None:
            self.zipfile.close()
            self.zipfile = None
        if self._owns_file and self.file is not None:
            self.file.close()
        self.file = None

    def parse(self):

        # We only support OPC as a ZIP file
        try:
            self.zipfile = zipfile.ZipFile(self.file, mode='r')
        except zipfile.BadZipFile:
            raise ValueError("Data is not a ZIP file or it is corrupted, unsupported format")
        self.load_media_types()
        self.load_contents()

    def _parse_xml(self, member):
        with self.zipfile.open(member) as f:
            try:
                return etree.parse(f).getroot()
            except etree.XMLSyntaxError as e:
                raise ValueError("{} is not well formed: {}".format(member, e))

    def load_media_types(self):
        try:
            media_types = self._parse_xml(CONTENT_TYPES_LOCATION)
        except KeyError:
            raise ValueError("Package has no {}".format(CONTENT_TYPES_LOCATION))

        # lxml qualifies names with full URIs
        for e in media_types.iterfind('.//{%s}Default' % CONTENT_TYPES_NS):
            ext = e.get('Extension', '').lower()
            ct = e.get('ContentType')
            logger.debug("Extension %s is %s" % (ext, ct))
            self._default_media_types[ext] = ct

        for e in media_types.iterfind('.//{%s}Override' % CONTENT_TYPES_NS):
            pn = e.get('PartName')
            ct = e.get('ContentType')
            logger.debug("Part name %s is %s" % (pn, ct))
            self._media_types[pn] = ct

    def part_media_type(self, part_name):
        if not part_name.startswith('/'):
            part_name = '/' + part_name
        if part_name in self._media_types:
            return self._media_types[part_name]

        dotpos = part_name.rfind('.')
        ext = part_name[dotpos+1:].lower()
        if ext in self._default_media_types:
            return self._default_media_types[ext]
        logger.debug("Unknown media type for %s" % part_name)
        return None

    def load_contents(self):
        self.parts = dict()
        for info in self.zipfile.infolist():
            if info.filename == CONTENT_TYPES_LOCATION:
                continue
            self.parts['/' + info.filename] = self.part_media_type(info.filename)

    def find(self, media_type):
        results = [pn for pn, pn_type in self.parts.items() if pn_type == media_type]
        logger.debug("{} of {} parts have media type {}".format(len(results), len(self.parts), media_type))
        return results

    def find_related(self, part_name):
        """
        Return the relationships of part_name as a dict of
        relationship type to absolute target part name.
        """
        if not part_name.startswith('/'):
            part_name = '/' + part_name
        barpos = part_name.rfind('/')
        base = part_name[0:barpos]
        rels_part_name = base + '/_rels' + part_name[barpos:] + '.rels'
        logger.debug("Relationships part for {} is {}".format(part_name, rels_part_name))

        related = dict()
        try:
            rels = self._parse_xml(rels_part_name[1:])
        except KeyError:
            logger.debug("No rels file for {}".format(part_name))
            return related

        for e in rels.iterfind('.//{%s}Relationship' % RELATIONSHIPS_NS):
            target = e.get('Target')
            rtype = e.get('Type')
            if not target or not rtype:
                continue
            if not target.startswith('/'):
                target = base + '/' + target
            logger.debug("Related {} {} for {}".format(target, rtype, part_name))
            related[rtype] = target

        return related
