#!/usr/bin/env python
#  -*- mode: python; indent-tabs-mode: nil; -*- coding: utf-8 -*-

"""

EpubWriter.py

Distributable under the GNU General Public License Version 3 or newer.

Writes an EPUB3 file.

"""

import datetime
import io
import os
import re
import time
import zipfile
from xml.sax.saxutils import escape, quoteattr

from lxml import etree
from lxml.builder import ElementMaker
from PIL import Image

import libgutenberg.GutenbergGlobals as gg
from libgutenberg.GutenbergGlobals import NS, mkdir_for_filename
from libgutenberg.Logger import debug, error, exception, info, warning
from libgutenberg.MediaTypes import mediatypes as mt

from mdepub.CommonCode import (
    MdEpubError, PackagingIOFailure, RenderFailure, StructuralInvariantViolation,
    OPF_FILENAME, NAV_FILENAME, NCX_FILENAME, STYLESHEET_FILENAME, COVERPAGE_FILENAME,
)
from mdepub.Navigation import NavEntry
from mdepub.Resources import make_href
from mdepub.Version import VERSION, GENERATOR
from . import BaseWriter, serialize_xml

MIMETYPE = 'application/epub+zip'
OPF_MEDIATYPE = 'application/oebps-package+xml'
NCX_MEDIATYPE = 'application/x-dtbncx+xml'

EPUB_TYPE = '{%s}type' % NS.epub

DEFAULT_COVER_DIMEN = (600, 800)

RE_NON_NAMECHAR = re.compile(r'[^\w.-]', re.U)

# Keep it small. Authors bring their own with --css.

DEFAULT_CSS = """\
@charset "utf-8";

body {
   margin: 0.5em;
   }
h1, h2, h3, h4, h5, h6 {
   page-break-after: avoid;
   }
h1 {
   page-break-before: always;
   }
pre, code {
   font-family: monospace;
   }
pre {
   white-space: pre-wrap;
   font-size: 0.9em;
   }
img {
   max-width: 100%;
   height: auto;
   }
table {
   border-collapse: collapse;
   }
td, th {
   border: 1px solid #888;
   padding: 0.2em 0.5em;
   }
blockquote {
   margin-left: 1.5em;
   font-style: italic;
   }
body.x-mdepub-coverpage {
   margin: 0;
   padding: 0;
   }
div.x-mdepub-cover {
   text-align: center;
   padding: 0;
   margin: 0;
   page-break-after: always;
   width: 100%;
   height: 100%;
   }
"""


def get_image_dimen(data):
    """ Return (width, height) of image data. """
    try:
        with Image.open(io.BytesIO(data)) as image:
            return image.size
    except (IOError, ValueError) as what:
        error("Could not read image dimensions (probably broken): %s" % what)
        return DEFAULT_COVER_DIMEN


class OEBPSContainer(zipfile.ZipFile):
    """ Class representing an OEBPS Container. """

    def __init__(self, filename, oebps_path=None):
        """ Create the zip file.

        And populate it with mimetype and container.xml files.

        """

        self.zipfilename = filename
        self.oebps_path = oebps_path if oebps_path else 'OEBPS/'
        info('Creating Epub file: %s' % filename)
        mkdir_for_filename(filename)

        # open zipfile
        zipfile.ZipFile.__init__(self, filename, 'w', zipfile.ZIP_DEFLATED)

        # write mimetype
        # OCF requires mimetype first and uncompressed
        self.add_entry('mimetype', MIMETYPE.encode('ascii'), zipfile.ZIP_STORED)

        self.add_container_xml(OPF_FILENAME)


    def commit(self):
        """ Close OCF Container. """
        self.close()
        info("Done Epub file: %s" % self.zipfilename)


    def rollback(self):
        """ Remove OCF Container. """
        debug("Removing Epub file: %s" % self.zipfilename)
        try:
            self.close()
        except (OSError, ValueError) as what:
            debug("Error closing %s: %s" % (self.zipfilename, what))
        if os.path.exists(self.zipfilename):
            os.remove(self.zipfilename)


    def add_entry(self, name, bytes_, compress_type=zipfile.ZIP_DEFLATED):
        """ Write one archive entry at name with the given compression. """
        i = self.zi(name, compress_type)
        self.writestr(i, bytes_)


    def add_unicode(self, name, u):
        """ Add file to OEBPS directory from unicode string. """
        self.add_bytes(name, u.encode('utf-8'))


    def add_bytes(self, name, bytes_, compress_type=zipfile.ZIP_DEFLATED):
        """ Add file to OEBPS directory from bytes string. """
        self.add_entry(self.oebps_path + name, bytes_, compress_type)


    @staticmethod
    def zi(filename, compress_type=zipfile.ZIP_DEFLATED):
        """ Make a ZipInfo. """
        z = zipfile.ZipInfo(filename, date_time=time.gmtime()[:6])
        z.compress_type = compress_type
        z.external_attr = 0x81a40000
        return z


    def add_container_xml(self, rootfilename):
        """ Write container.xml

        <?xml version='1.0' encoding='UTF-8'?>

        <container xmlns='urn:oasis:names:tc:opendocument:xmlns:container'
                   version='1.0'>
          <rootfiles>
            <rootfile full-path='$path'
                      media-type='application/oebps-package+xml' />
          </rootfiles>
        </container>

        """

        rootfilename = self.oebps_path + rootfilename

        ns_oasis = 'urn:oasis:names:tc:opendocument:xmlns:container'

        ocf = ElementMaker(namespace=ns_oasis,
                           nsmap={None: ns_oasis})

        container = ocf.container(
            ocf.rootfiles(
                ocf.rootfile(**{
                    'full-path': rootfilename,
                    'media-type': OPF_MEDIATYPE})),
            version='1.0')

        self.add_entry('META-INF/container.xml', serialize_xml(container).encode('utf-8'))


    def add_cover_wrapper(self, cover, title, stylesheet=None):
        """ Add a XHTML page wrapping the cover image. """

        (cover_x, cover_y) = get_image_dimen(cover.data)
        link = ''
        if stylesheet:
            link = f'\n    <link href={quoteattr(make_href(stylesheet))} rel="stylesheet" type="text/css"/>'
        wrapper = f'''<?xml version='1.0' encoding='utf-8'?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
  <head>
    <title>{escape(title)}</title>{link}
  </head>
<body class="x-mdepub-coverpage" epub:type="cover">
  <div class="x-mdepub-cover">
    <svg xmlns="http://www.w3.org/2000/svg" height="100%" preserveAspectRatio="xMidYMid meet" version="1.1" viewBox="0 0 {cover_x} {cover_y}" width="100%" xmlns:xlink="http://www.w3.org/1999/xlink">
      <image width="{cover_x}" height="{cover_y}" xlink:href={quoteattr(make_href(cover.filename))}/>
    </svg>
  </div>
</body>
</html>
'''
        self.add_unicode(COVERPAGE_FILENAME, wrapper)
        return COVERPAGE_FILENAME


class TocNav(object):
    """ Class that builds nav.xhtml. """

    def __init__(self, metadata, toc, landmarks=None):
        self.metadata = metadata
        self.toc = toc
        self.landmarks = landmarks or []
        self.count = 0
        self.elementmaker = ElementMaker(namespace=str(NS.xhtml),
                                         nsmap={None: str(NS.xhtml), 'epub': str(NS.epub)})


    def __str__(self):
        """ Serialize nav.xhtml as unicode string. """
        em = self.elementmaker

        self.count = 0
        head = em.head(
            em.title(self.metadata.get_title()),
            em.meta(name='generator', content=GENERATOR % VERSION))

        nav = em.nav(**{EPUB_TYPE: 'toc', 'id': 'toc', 'role': 'doc-toc',
                        'aria-label': 'Table of Contents'})
        nav.append(em.h1(self.metadata.get_title()))
        nav.append(self._make_ol(self.toc))
        body = em.body(nav)

        if self.landmarks:
            body.append(self._make_landmarks(self.landmarks))

        lang = self.metadata.language
        html = em.html(head, body, **{'lang': lang, NS.xml.lang: lang})
        return serialize_xml(html, doctype=gg.HTML5_DOCTYPE)


    def _make_ol(self, entries):
        """ Build the nested list for entries.

        Headings become spans. A span must be followed by a list, so
        headings without entries below them are dropped.

        """
        em = self.elementmaker

        ol = em.ol()
        for entry in entries:
            sub = self._make_ol(entry.children) if entry.children else None
            if sub is not None and len(sub) == 0:
                sub = None

            if entry.is_heading():
                if sub is None:
                    debug("Dropping empty heading %s from nav" % entry.title)
                    continue
                li = em.li(em.span(entry.title))
            else:
                self.count += 1
                li = em.li(em.a(entry.title, href=entry.href, id="np-%d" % self.count))

            if sub is not None:
                li.append(sub)
            ol.append(li)

        return ol


    def _make_landmarks(self, landmarks):
        """ Build the landmarks. """
        em = self.elementmaker
        root = em.nav(**{EPUB_TYPE: 'landmarks', 'hidden': 'hidden',
                         'aria-label': 'Landmarks'})
        top = em.ol()
        root.append(top)

        for href, type_, title in landmarks:
            top.append(em.li(em.a(title, **{'href': href, EPUB_TYPE: type_})))

        return root


class TocNCX(object):
    """ Class that builds toc.ncx for EPUB 2 reading systems. """

    def __init__(self, metadata, toc):
        self.metadata = metadata
        self.toc = toc
        self.seen_urls = {}
        self.count = 0
        self.ncx = ElementMaker(namespace=str(NS.ncx),
                                nsmap={None: str(NS.ncx)})


    def __str__(self):
        """ Serialize toc.ncx as unicode string. """
        ncx = self.ncx

        self.seen_urls = {}
        self.count = 0
        tocdepth = max((entry.depth() for entry in self.toc), default=1)

        head = ncx.head(
            ncx.meta(name='dtb:uid', content=self.metadata.opf_identifier),
            ncx.meta(name='dtb:depth', content=str(tocdepth)),
            ncx.meta(name='dtb:generator', content=GENERATOR % VERSION),
            ncx.meta(name='dtb:totalPageCount', content='0'),
            ncx.meta(name='dtb:maxPageNumber', content='0'))

        doc_title = ncx.docTitle(ncx.text(self.metadata.get_title()))

        navmap = ncx.navMap()
        for entry in self.toc:
            self._add_navpoint(navmap, entry)

        root = ncx.ncx(
            head,
            doc_title,
            navmap,
            **{'version': '2005-1', NS.xml.lang: self.metadata.language})

        return serialize_xml(root, doctype=gg.NCX_DOCTYPE)


    def _add_navpoint(self, parent, entry):
        """ Add a navPoint for entry and its children.

        A heading points to the first document below it. Entries
        pointing to the same document share the playOrder.

        """
        ncx = self.ncx

        href = entry.first_href()
        if href is None:
            return

        if href not in self.seen_urls:
            self.seen_urls[href] = str(len(self.seen_urls) + 1)

        self.count += 1
        np = ncx.navPoint(
            ncx.navLabel(ncx.text(entry.title)),
            ncx.content(src=href),
            **{'id': "np-%d" % self.count,
               'playOrder': self.seen_urls[href]})
        parent.append(np)

        for child in entry.children:
            self._add_navpoint(np, child)


class ContentOPF(object):
    """ Class that builds content.opf.

    Keeps the manifest state: every archive path gets exactly one item
    with a unique id, every spine itemref names an item.

    """

    def __init__(self):
        self.nsmap = {None: str(NS.opf), 'dc': str(NS.dc)}
        self.lang = None

        self.opf = ElementMaker(namespace=str(NS.opf), nsmap=self.nsmap)

        self.metadata = self.opf.metadata()
        self.manifest = self.opf.manifest()
        self.spine = self.opf.spine()

        self.items = {}   # archive path -> id
        self.ids = set()


    def __str__(self):
        """ Serialize content.opf as unicode string. """

        self.check()

        package = self.opf.package(
            **{'version': '3.0', 'unique-identifier': 'id', NS.xml.lang: self.lang or 'en'})
        package.append(self.metadata)
        package.append(self.manifest)
        package.append(self.spine)

        return serialize_xml(package)


    def check(self):
        """ Verify the manifest state. """

        if len(self.spine) == 0:
            raise StructuralInvariantViolation('No spine item in content.opf.')
        if len(self.ids) != len(self.items):
            raise StructuralInvariantViolation('Manifest ids are not unique.')
        for itemref in self.spine:
            if itemref.get('idref') not in self.ids:
                raise StructuralInvariantViolation(
                    'Spine refers to unknown manifest item %s' % itemref.get('idref'))


    @staticmethod
    def make_id(filename):
        """ Make a manifest id out of an archive path.

        images/logo.png -> images_logo.png

        """
        id_ = RE_NON_NAMECHAR.sub('_', filename)
        if not id_[:1].isalpha():
            id_ = 'item_' + id_
        return id_


    def meta_item(self, name, content):
        """ Add item to metadata. """
        self.metadata.append(self.opf.meta(name=name, content=content))


    def manifest_item(self, filename, mediatype, id_=None, prop=None):
        """ Add item to manifest. """

        if filename in self.items:
            raise StructuralInvariantViolation('Duplicate manifest item %s' % filename)

        base = id_ or self.make_id(filename)
        id_ = base
        count = 1
        while id_ in self.ids:
            count += 1
            id_ = '%s-%d' % (base, count)

        manifest_atts = {'href': make_href(filename), 'id': id_, 'media-type': mediatype}
        if prop:
            manifest_atts['properties'] = prop
        self.manifest.append(self.opf.item(**manifest_atts))

        self.items[filename] = id_
        self.ids.add(id_)
        return id_


    def spine_item(self, filename, mediatype, id_=None, linear=True, first=False, prop=None):
        """ Add item to spine and manifest. """

        id_ = self.manifest_item(filename, mediatype, id_, prop=prop)
        itemref = self.opf.itemref(idref=id_, linear='yes' if linear else 'no')

        if first:
            self.spine.insert(0, itemref)
        else:
            self.spine.append(itemref)
        return id_


    def toc_item(self, filename):
        """ Add nav document to manifest. """
        self.manifest_item(filename, mt.xhtml, id_='nav', prop='nav')


    def toc2_item(self, filename):
        """ Add epub2 TOC to manifest and spine. """
        self.manifest_item(filename, NCX_MEDIATYPE, id_='ncx')
        self.spine.attrib['toc'] = 'ncx'


    def metadata_item(self, metadata):
        """ Build metadata from Metadata struct.

        Example of metadata:

  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:identifier id="id">urn:uuid:0f8a1f3e-...</dc:identifier>
    <dc:title>The Book</dc:title>
    <dc:language>en</dc:language>
    <dc:creator id="author_0">Jane Doe</dc:creator>
    <meta property="role" refines="#author_0" scheme="marc:relators">aut</meta>
    <dc:description>What it is about.</dc:description>
    <meta property="dcterms:modified">2024-05-31T21:11:14Z</meta>
    <meta name="generator" content="mdepub 0.3.1"/>
  </metadata>
    """

        dc = ElementMaker(nsmap=self.nsmap, namespace=str(NS.dc))

        self.metadata.append(dc.identifier(metadata.opf_identifier, {'id': 'id'}))

        # replace newlines with /
        title = re.sub(r'\s*[\r\n]+\s*', ' / ', metadata.get_title())
        self.metadata.append(dc.title(title))

        self.lang = metadata.language
        self.metadata.append(dc.language(metadata.language))

        for count, author in enumerate(metadata.authors):
            self.metadata.append(dc.creator(author, {'id': f'author_{count}'}))
            self.metadata.append(self.opf.meta('aut',
                                               {'property': 'role',
                                                'refines': f'#author_{count}',
                                                'scheme': 'marc:relators'}))

        if metadata.description:
            self.metadata.append(dc.description(metadata.description))

        self.metadata.append(self.opf.meta(
            datetime.datetime.now(datetime.timezone.utc).isoformat(
                timespec='seconds').replace('+00:00', 'Z'),
            {'property': 'dcterms:modified'}))

        self.meta_item('generator', GENERATOR % VERSION)


    def add_coverpage(self, id_):
        """ Register the cover image for EPUB 2 reading systems. """

        debug("Adding coverpage id: %s" % id_)
        self.meta_item('cover', id_)


class Writer(BaseWriter):
    """ Class that writes epub files. """

    def shipout(self, job):
        """ Build the zip file.

        Any failure removes the partial file.

        """

        try:
            ocf = OEBPSContainer(os.path.abspath(job.outputfile))
        except OSError as what:
            exception("Error creating Epub: %s" % what)
            raise PackagingIOFailure('Cannot create %s: %s' % (job.outputfile, what)) from what

        try:
            opf = ContentOPF()
            opf.metadata_item(job.metadata)

            landmarks = []
            packaged = set()

            # cover
            if job.cover is not None:
                ocf.add_bytes(job.cover.filename, job.cover.data)
                id_ = opf.manifest_item(job.cover.filename, job.cover.mediatype,
                                        prop='cover-image')
                opf.add_coverpage(id_)
                packaged.add(job.cover.filename)

                href = ocf.add_cover_wrapper(
                    job.cover, job.metadata.get_title(),
                    STYLESHEET_FILENAME if job.stylesheet is not None else None)
                opf.spine_item(href, mt.xhtml, id_='coverpage-wrapper', first=True, prop='svg')
                landmarks.append((make_href(href), 'cover', 'Cover'))

            landmarks.append((make_href(NAV_FILENAME) + '#toc', 'toc', 'Table of Contents'))

            # chapters in reading order
            for index in job.spine:
                doc = job.documents.get(index)
                if doc is None:
                    raise StructuralInvariantViolation(
                        'No document for spine chapter %d' % index)
                ocf.add_bytes(doc.filename, doc.data)
                opf.spine_item(doc.filename, mt.xhtml, prop=' '.join(doc.properties) or None)
                packaged.add(doc.filename)

            if job.spine:
                first = job.documents[job.spine[0]]
                landmarks.append((make_href(first.filename), 'bodymatter', 'Start'))

            # assets
            for asset in job.assets:
                if asset.filename in packaged:
                    continue
                ocf.add_bytes(asset.filename, asset.data)
                opf.manifest_item(asset.filename, asset.mediatype)
                packaged.add(asset.filename)

            if job.stylesheet is not None:
                ocf.add_bytes(STYLESHEET_FILENAME, job.stylesheet)
                opf.manifest_item(STYLESHEET_FILENAME, mt.css, id_='css')

            # toc

            toc = job.toc
            if not any(entry.first_href() for entry in toc) and job.spine:
                toc = [NavEntry('Start', make_href(job.documents[job.spine[0]].filename))]

            opf.toc_item(NAV_FILENAME)
            ocf.add_unicode(NAV_FILENAME, str(TocNav(job.metadata, toc, landmarks)))

            opf.toc2_item(NCX_FILENAME)
            ocf.add_unicode(NCX_FILENAME, str(TocNCX(job.metadata, toc)))

            ocf.add_unicode(OPF_FILENAME, str(opf))

            ocf.commit()

        except (OSError, zipfile.BadZipFile, zipfile.LargeZipFile) as what:
            exception("Error building Epub: %s" % what)
            ocf.rollback()
            raise PackagingIOFailure('Cannot write %s: %s' % (job.outputfile, what)) from what

        except MdEpubError as what:
            exception("Error building Epub: %s" % what)
            ocf.rollback()
            raise

        except (ValueError, etree.SerialisationError) as what:
            # lxml refuses titles and metadata that are not valid XML text
            exception("Error building Epub: %s" % what)
            ocf.rollback()
            raise RenderFailure('Cannot build package documents for %s: %s' % (
                job.outputfile, what)) from what

        except Exception as what:
            exception("Error building Epub: %s" % what)
            ocf.rollback()
            raise


    def build(self, job):
        """ Build epub """

        info("Building %s: %d chapters, %d assets" % (
            job.outputfile, len(job.spine), len(job.assets)))
        if not job.spine:
            warning("Book %s has no chapters" % job.metadata.get_title())
        self.shipout(job)
