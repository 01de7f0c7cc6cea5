#!/usr/bin/env python
#  -*- mode: python; indent-tabs-mode: nil; -*- coding: UTF8 -*-

"""

MarkdownRenderer.py

Distributable under the GNU General Public License Version 3 or newer.

Renders the markdown of one chapter into a XHTML document and rewrites
all its links so that they work inside the package.

"""

import posixpath
import re
import urllib.parse

import markdown
import lxml.html
from lxml import etree
from lxml.builder import ElementMaker

import libgutenberg.GutenbergGlobals as gg
from libgutenberg.GutenbergGlobals import NS, xpath
from libgutenberg.Logger import debug, warning

from mdepub.CommonCode import (
    SourceNotFound, RenderFailure, SOURCE_EXTENSION,
)
from mdepub.Book import normalize_source_path
from mdepub.Resources import is_local, make_href
from mdepub.Version import VERSION, GENERATOR

MARKDOWN_EXTENSIONS = ['tables', 'fenced_code', 'footnotes', 'sane_lists']

SVG_NS = 'http://www.w3.org/2000/svg'
MATHML_NS = 'http://www.w3.org/1998/Math/MathML'
XLINK_NS = 'http://www.w3.org/1999/xlink'
XLINK_HREF = '{%s}href' % XLINK_NS

# XML 1.1 RestrictedChars and NUL
RE_RESTRICTED = re.compile('[\x00-\x08\x0b\x0c\x0e-\x1f\x7f-\x84\x86-\x9f]')

RE_XML_NAME = re.compile(r'^[^\W\d][\w.\-]*$', re.U)
RE_ID_STRIP = re.compile(r'[^\w\s-]', re.U)
RE_WHITESPACE = re.compile(r'\s+', re.U)

# svg and mathml names the HTML parser lowercases
CAMEL_CASE_NAMES = dict((name.lower(), name) for name in (
    # svg elements
    'altGlyph', 'altGlyphDef', 'altGlyphItem', 'animateColor', 'animateMotion',
    'animateTransform', 'clipPath', 'feBlend', 'feColorMatrix',
    'feComponentTransfer', 'feComposite', 'feConvolveMatrix',
    'feDiffuseLighting', 'feDisplacementMap', 'feDistantLight', 'feDropShadow',
    'feFlood', 'feFuncA', 'feFuncB', 'feFuncG', 'feFuncR', 'feGaussianBlur',
    'feImage', 'feMerge', 'feMergeNode', 'feMorphology', 'feOffset',
    'fePointLight', 'feSpecularLighting', 'feSpotLight', 'feTile',
    'feTurbulence', 'foreignObject', 'glyphRef', 'linearGradient',
    'radialGradient', 'textPath',
    # svg attributes
    'attributeName', 'attributeType', 'baseFrequency', 'baseProfile',
    'calcMode', 'clipPathUnits', 'diffuseConstant', 'edgeMode', 'filterUnits',
    'gradientTransform', 'gradientUnits', 'kernelMatrix', 'kernelUnitLength',
    'keyPoints', 'keySplines', 'keyTimes', 'lengthAdjust', 'limitingConeAngle',
    'markerHeight', 'markerUnits', 'markerWidth', 'maskContentUnits',
    'maskUnits', 'numOctaves', 'pathLength', 'patternContentUnits',
    'patternTransform', 'patternUnits', 'pointsAtX', 'pointsAtY', 'pointsAtZ',
    'preserveAlpha', 'preserveAspectRatio', 'primitiveUnits', 'refX', 'refY',
    'repeatCount', 'repeatDur', 'requiredExtensions', 'requiredFeatures',
    'specularConstant', 'specularExponent', 'spreadMethod', 'startOffset',
    'stdDeviation', 'stitchTiles', 'surfaceScale', 'systemLanguage',
    'tableValues', 'targetX', 'targetY', 'textLength', 'viewBox', 'viewTarget',
    'xChannelSelector', 'yChannelSelector', 'zoomAndPan',
    # mathml attributes
    'definitionURL',
))

HEADINGS = frozenset(NS.xhtml[tag] for tag in ('h1', 'h2', 'h3', 'h4', 'h5', 'h6'))

# element, attribute pairs that must point to a packaged file
ASSET_LINKS = (
    ('img', 'src'),
    ('link', 'href'),
    ('source', 'src'),
    ('audio', 'src'),
    ('video', 'src'),
    ('video', 'poster'),
    ('track', 'src'),
)

em = ElementMaker(makeelement=lxml.html.xhtml_parser.makeelement,
                  namespace=str(NS.xhtml),
                  nsmap={None: str(NS.xhtml)})


def normalize_id(text):
    """ Make a fragment identifier out of heading text.

    'Getting Started!' -> 'getting-started'

    """
    id_ = RE_ID_STRIP.sub('', text).strip().lower()
    id_ = RE_WHITESPACE.sub('-', id_)
    if not id_:
        return 'section'
    if not RE_XML_NAME.match(id_) or id_[0] == '_':
        id_ = 'h-' + id_
    return id_


def unique_id(id_, seen):
    """ Append -1, -2, ... until id_ is not in seen. """
    unique = id_
    count = 0
    while unique in seen:
        count += 1
        unique = '%s-%d' % (id_, count)
    seen.add(unique)
    return unique


class RenderedDocument(object):
    """ The XHTML of one chapter, ready for packaging. """

    def __init__(self, index, filename, title, data, assets, properties=()):
        self.index = index
        self.filename = filename
        self.title = title
        self.data = data
        self.assets = assets
        self.properties = list(properties)


    def __repr__(self):
        return '<RenderedDocument %s>' % self.filename


class MarkdownRenderer(object):
    """ Renders chapters.

    chapter_map maps chapter source paths to their archive paths, it is
    used to rewrite links between chapters. stylesheets are the archive
    paths of the stylesheets every chapter links to.

    One renderer can render many chapters at the same time, the only
    shared state is the resolver.

    """

    def __init__(self, resolver, chapter_map, stylesheets=(), language=None):
        self.resolver = resolver
        self.chapter_map = chapter_map
        self.stylesheets = list(stylesheets)
        self.language = language


    def render(self, chapter, filename):
        """ Render chapter into a RenderedDocument stored at filename. """

        debug("Rendering chapter %s -> %s" % (chapter.path, filename))
        source = chapter.content or ''

        body = self.html_to_body(self.markdown_to_html(source), source)
        self.strip_bad_attributes(body)
        self.fix_foreign_elements(body)
        self.fix_ids(body)

        assets = []
        try:
            self.rewrite_links(body, chapter, assets)
        except SourceNotFound as what:
            raise type(what)('Chapter "%s" (%s): %s' % (chapter.title, chapter.path, what)) from what

        self.wrap_images(body)

        try:
            xhtml = self.make_document(chapter.title, body)
            data = etree.tostring(xhtml,
                                  encoding='utf-8',
                                  xml_declaration=True,
                                  doctype=gg.HTML5_DOCTYPE)
        except (ValueError, etree.SerialisationError) as what:
            raise RenderFailure('Chapter "%s" (%s): %s' % (chapter.title, chapter.path, what)) from what

        return RenderedDocument(chapter.index, filename, chapter.title, data, assets,
                                self.get_properties(xhtml))


    @staticmethod
    def markdown_to_html(source):
        """ Markdown -> HTML fragment. """
        md = markdown.Markdown(extensions=MARKDOWN_EXTENSIONS, output_format='xhtml')
        return md.convert(source)


    @staticmethod
    def html_to_body(html, source):
        """ Parse the HTML fragment into a XHTML body element.

        The HTML parser copes with whatever raw HTML the author put into
        the markdown. If even that fails, the markdown source goes into
        the body as preformatted text.

        """

        body = em.body()
        html = RE_RESTRICTED.sub('', html)
        if not html.strip():
            return body

        try:
            container = lxml.html.fragment_fromstring(html, create_parent='div')
        except (etree.ParserError, etree.XMLSyntaxError) as what:
            warning('Cannot parse rendered markdown, using plain text: %s' % what)
            body.append(em.pre(RE_RESTRICTED.sub('', source)))
            return body

        lxml.html.html_to_xhtml(container)
        body.text = container.text
        for child in list(container):
            body.append(child)
        return body


    @staticmethod
    def strip_bad_attributes(body):
        """ Remove attributes the HTML parser accepted but XML won't. """
        for elem in body.iter(etree.Element):
            for name in list(elem.attrib.keys()):
                if name == 'xml:lang':
                    elem.set('lang', elem.attrib.pop(name))
                elif name == 'xlink:href':
                    elem.set(XLINK_HREF, elem.attrib.pop(name))
                elif name.startswith('{'):
                    continue
                elif name == 'xmlns':
                    # namespaces get fixed in fix_foreign_elements
                    del elem.attrib[name]
                elif ':' in name or not RE_XML_NAME.match(name):
                    debug('Dropping attribute %s' % name)
                    del elem.attrib[name]


    @staticmethod
    def fix_foreign_elements(body):
        """ Put inline svg and math into their own namespaces.

        The root of each island is replaced by a new element that
        declares the namespace, and the camel-cased names the HTML
        parser lowercased are restored.

        """

        for name, ns, nsmap in (('svg', SVG_NS, {None: SVG_NS, 'xlink': XLINK_NS}),
                                ('math', MATHML_NS, {None: MATHML_NS})):
            for old in xpath(body, './/xhtml:' + name):
                if etree.QName(old).namespace != str(NS.xhtml):
                    continue  # nested, done with its ancestor

                root = etree.Element('{%s}%s' % (ns, name), nsmap=nsmap)
                for attr, value in old.attrib.items():
                    root.set(attr, value)
                root.text = old.text
                root.tail = old.tail
                root.extend(list(old))
                old.getparent().replace(old, root)

                for elem in root.iter(etree.Element):
                    localname = etree.QName(elem).localname
                    elem.tag = '{%s}%s' % (ns, CAMEL_CASE_NAMES.get(localname, localname))
                    for attr in list(elem.attrib.keys()):
                        if attr in CAMEL_CASE_NAMES:
                            elem.set(CAMEL_CASE_NAMES[attr], elem.attrib.pop(attr))


    @staticmethod
    def fix_ids(body):
        """ Give every heading an id and make all ids unique.

        Ids the author wrote are kept (unless duplicated). Headings
        without id get one made from their text.

        """

        seen = set()
        for elem in body.iter(etree.Element):
            id_ = elem.get('id')
            if id_ is not None:
                elem.set('id', unique_id(id_, seen))

        for elem in body.iter(*HEADINGS):
            if elem.get('id') is None:
                elem.set('id', unique_id(normalize_id(''.join(elem.itertext())), seen))


    def rewrite_links(self, body, chapter, assets):
        """ Rewrite links to chapters and local files. """

        for elem in xpath(body, './/xhtml:a[@href] | .//xhtml:area[@href]'):
            elem.set('href', self.rewrite_hyperlink(elem.get('href'), chapter, assets))

        for tag, attr in ASSET_LINKS:
            for elem in xpath(body, './/xhtml:%s[@%s]' % (tag, attr)):
                elem.set(attr, self.rewrite_asset_link(elem.get(attr), chapter, assets))

        for elem in body.iter('{%s}image' % SVG_NS):
            if elem.get(XLINK_HREF) is not None:
                elem.set(XLINK_HREF, self.rewrite_asset_link(elem.get(XLINK_HREF), chapter, assets))


    def rewrite_hyperlink(self, href, chapter, assets):
        """ Rewrite a hyperlink.

        Links to chapters point to the chapter document. Links to other
        local files package the file, if it exists. Everything else is
        left alone.

        """

        if not is_local(href):
            return href
        parts = urllib.parse.urlsplit(href)
        path = urllib.parse.unquote(parts.path)

        if path.endswith(SOURCE_EXTENSION):
            if path.startswith('/'):
                target = normalize_source_path(path)
            else:
                target = posixpath.normpath(posixpath.join(chapter.source_dir(), path))
            filename = self.chapter_map.get(target)
            if filename is None:
                warning('Link to unknown chapter in %s: %s' % (chapter.path, href))
                return href
            return make_href(filename, parts.fragment)

        try:
            asset = self.resolver.resolve(href, chapter.source_dir())
        except SourceNotFound as what:
            warning('Not packaging link target in %s: %s' % (chapter.path, what))
            return href
        self.add_asset(assets, asset)
        return make_href(asset.filename, parts.fragment)


    def rewrite_asset_link(self, url, chapter, assets):
        """ Rewrite a link to a file the chapter needs. Raises SourceNotFound. """

        if not is_local(url):
            return url
        asset = self.resolver.resolve(url, chapter.source_dir())
        self.add_asset(assets, asset)
        return make_href(asset.filename, urllib.parse.urlsplit(url).fragment)


    @staticmethod
    def add_asset(assets, asset):
        known = set(a.filename for a in assets)
        for a in asset.iter_tree():
            if a.filename not in known:
                known.add(a.filename)
                assets.append(a)


    @staticmethod
    def wrap_images(body):
        """ Images must be inside a block element. """
        for img in xpath(body, './xhtml:img'):
            p = em.p()
            img.addprevious(p)
            p.append(img)


    def make_document(self, title, body):
        """ Wrap body into a complete XHTML document. """

        head = em.head(
            em.title(title),
            em.meta(name='generator', content=GENERATOR % VERSION))
        for href in self.stylesheets:
            head.append(em.link(rel='stylesheet', type='text/css', href=make_href(href)))

        params = {}
        if self.language:
            params = {'lang': self.language, NS.xml.lang: self.language}

        return em.html(head, body, **params)


    @staticmethod
    def get_properties(xhtml):
        """ Manifest properties of the document. """

        properties = []
        if next(xhtml.iter('{%s}svg' % SVG_NS), None) is not None:
            properties.append('svg')
        if next(xhtml.iter('{%s}math' % MATHML_NS), None) is not None:
            properties.append('mathml')
        for elem in xpath(xhtml, '//xhtml:img[@src] | //xhtml:audio[@src] | //xhtml:video[@src]'):
            if urllib.parse.urlsplit(elem.get('src')).scheme in ('http', 'https'):
                properties.append('remote-resources')
                break
        return properties
