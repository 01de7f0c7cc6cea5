#!/usr/bin/env python
# -*- coding: utf-8 -*-
'''
run this with
python -m unittest -v tests.test_renderer
'''
import os
import tempfile
import unittest

from lxml import etree

from mdepub.Book import Book
from mdepub.CommonCode import SourceNotFound, RenderFailure
from mdepub.MarkdownRenderer import MarkdownRenderer, normalize_id, unique_id
from mdepub.Resources import AssetResolver

NSS = {'x': 'http://www.w3.org/1999/xhtml'}
SVG = 'http://www.w3.org/2000/svg'
MATHML = 'http://www.w3.org/1998/Math/MathML'


def write_file(root, path, data):
    filename = os.path.join(root, *path.split('/'))
    os.makedirs(os.path.dirname(filename), exist_ok=True)
    with open(filename, 'wb') as fp:
        fp.write(data)


class TestIds(unittest.TestCase):

    def test_normalize_id(self):
        self.assertEqual(normalize_id('Getting Started!'), 'getting-started')
        self.assertEqual(normalize_id('  A   b  '), 'a-b')
        self.assertEqual(normalize_id('1. Intro'), 'h-1-intro')
        self.assertEqual(normalize_id('_private'), 'h-_private')
        self.assertEqual(normalize_id('!!!'), 'section')

    def test_unique_id(self):
        seen = set()
        self.assertEqual(unique_id('a', seen), 'a')
        self.assertEqual(unique_id('a', seen), 'a-1')
        self.assertEqual(unique_id('a', seen), 'a-2')


class TestMarkdownRenderer(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.src_dir = self.tmp.name
        write_file(self.src_dir, 'img/logo.png', b'\x89PNG logo')
        write_file(self.src_dir, 'files/data.csv', b'a,b\n1,2\n')

        self.book = Book('Test')
        self.book.add_chapter('Intro', 'intro.md')
        guide = self.book.add_chapter('Guide')
        self.setup = self.book[self.book.add_chapter('Setup', 'guide/setup.md', parent=guide)]

        self.resolver = AssetResolver(self.src_dir)
        self.renderer = MarkdownRenderer(
            self.resolver,
            {'intro.md': 'intro.xhtml', 'guide/setup.md': 'guide_setup.xhtml'},
            stylesheets=['mdepub.css'],
            language='de')

    def tearDown(self):
        self.tmp.cleanup()

    def render(self, content, chapter=None):
        chapter = chapter or self.setup
        chapter.content = content
        doc = self.renderer.render(chapter, 'guide_setup.xhtml')
        return doc, etree.fromstring(doc.data)

    def test_document(self):
        doc, xhtml = self.render('# Setup\n\nSome *text*.\n')
        self.assertEqual(doc.filename, 'guide_setup.xhtml')
        self.assertEqual(doc.index, self.setup.index)
        self.assertTrue(doc.data.startswith(b'<?xml'))
        self.assertIn(b'<!DOCTYPE html>', doc.data)
        self.assertEqual(xhtml.tag, '{http://www.w3.org/1999/xhtml}html')
        self.assertEqual(xhtml.get('lang'), 'de')
        self.assertEqual(xhtml.xpath('//x:title/text()', namespaces=NSS), ['Setup'])
        self.assertEqual(xhtml.xpath('//x:link[@rel="stylesheet"]/@href', namespaces=NSS),
                         ['mdepub.css'])
        self.assertEqual(xhtml.xpath('//x:em/text()', namespaces=NSS), ['text'])

    def test_image(self):
        doc, xhtml = self.render('![alt](img/logo.png)\n')
        self.assertEqual(xhtml.xpath('//x:img/@src', namespaces=NSS), ['img/logo.png'])
        self.assertEqual([(a.filename, a.mediatype) for a in doc.assets],
                         [('img/logo.png', 'image/png')])

    def test_image_chapter_relative(self):
        write_file(self.src_dir, 'guide/img/shot.png', b'\x89PNG shot')
        doc, xhtml = self.render('![alt](img/shot.png)\n')
        self.assertEqual(xhtml.xpath('//x:img/@src', namespaces=NSS), ['guide/img/shot.png'])

    def test_same_image_twice(self):
        doc, xhtml = self.render('![a](img/logo.png)\n\n![b](../img/logo.png)\n')
        self.assertEqual(xhtml.xpath('//x:img/@src', namespaces=NSS),
                         ['img/logo.png', 'img/logo.png'])
        self.assertEqual(len(doc.assets), 1)

    def test_missing_image(self):
        with self.assertRaises(SourceNotFound) as cm:
            self.render('![alt](img/nothere.png)\n')
        self.assertIn('Setup', str(cm.exception))

    def test_chapter_link(self):
        doc, xhtml = self.render('[Intro](../intro.md#top) and [self](setup.md)\n')
        self.assertEqual(xhtml.xpath('//x:a/@href', namespaces=NSS),
                         ['intro.xhtml#top', 'guide_setup.xhtml'])

    def test_unknown_chapter_link(self):
        doc, xhtml = self.render('[gone](missing.md)\n')
        self.assertEqual(xhtml.xpath('//x:a/@href', namespaces=NSS), ['missing.md'])
        self.assertEqual(doc.assets, [])

    def test_other_links(self):
        doc, xhtml = self.render(
            '[web](https://example.org/) [mail](mailto:a@example.org) [here](#setup) '
            '[data](../files/data.csv) [nofile](nothere.txt)\n')
        self.assertEqual(xhtml.xpath('//x:a/@href', namespaces=NSS),
                         ['https://example.org/', 'mailto:a@example.org', '#setup',
                          'files/data.csv', 'nothere.txt'])
        self.assertEqual([a.filename for a in doc.assets], ['files/data.csv'])

    def test_heading_ids(self):
        doc, xhtml = self.render('# Hello World\n\ntext\n\n## Hello World\n\n### Other\n')
        self.assertEqual(xhtml.xpath('//x:h1/@id | //x:h2/@id | //x:h3/@id', namespaces=NSS),
                         ['hello-world', 'hello-world-1', 'other'])

    def test_explicit_ids_kept(self):
        doc, xhtml = self.render('<div id="other">x</div>\n\n# Other\n')
        ids = xhtml.xpath('//@id')
        self.assertIn('other', ids)
        self.assertIn('other-1', ids)
        self.assertEqual(len(ids), len(set(ids)))

    def test_raw_html(self):
        doc, xhtml = self.render('<div class="note"><p>unclosed paragraph</div>\n\nafter<br>\n')
        self.assertEqual(xhtml.xpath('//x:div[@class="note"]//text()', namespaces=NSS),
                         ['unclosed paragraph'])

    def test_empty(self):
        doc, xhtml = self.render('')
        body = xhtml.find('{http://www.w3.org/1999/xhtml}body')
        self.assertEqual(len(body), 0)

    def test_properties(self):
        doc, xhtml = self.render('![r](https://example.org/x.png)\n')
        self.assertEqual(doc.properties, ['remote-resources'])
        doc, xhtml = self.render('text\n')
        self.assertEqual(doc.properties, [])

    def test_inline_svg_and_math(self):
        doc, xhtml = self.render(
            '<div><svg xmlns="http://www.w3.org/2000/svg" viewBox="0 0 10 10">'
            '<defs><linearGradient id="g" gradientUnits="userSpaceOnUse"></linearGradient></defs>'
            '<rect width="5" height="5"></rect></svg></div>\n\n'
            '<div><math><mi>x</mi></math></div>\n')

        svg = xhtml.find('.//{%s}svg' % SVG)
        self.assertIsNotNone(svg)
        self.assertIsNone(svg.prefix)
        self.assertEqual(svg.get('viewBox'), '0 0 10 10')
        self.assertNotIn('viewbox', svg.attrib)
        self.assertNotIn('xmlns', svg.attrib)
        gradient = svg.find('.//{%s}linearGradient' % SVG)
        self.assertEqual(gradient.get('gradientUnits'), 'userSpaceOnUse')
        self.assertIsNotNone(svg.find('{%s}rect' % SVG))
        self.assertIsNotNone(xhtml.find('.//{%s}math/{%s}mi' % (MATHML, MATHML)))
        self.assertNotIn(b'ns0:', doc.data)
        self.assertEqual(doc.properties, ['svg', 'mathml'])

    def test_bad_title(self):
        self.setup.title = 'Set\x01up'
        with self.assertRaises(RenderFailure) as cm:
            self.render('text\n')
        self.assertIn('guide/setup.md', str(cm.exception))


if __name__ == '__main__':
    unittest.main()
