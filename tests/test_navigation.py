#!/usr/bin/env python
# -*- coding: utf-8 -*-
'''
run this with
python -m unittest -v tests.test_navigation
'''
import unittest

from mdepub.Book import Book
from mdepub.Navigation import (
    archive_name, assign_archive_paths, build_navigation, chapter_map, NavEntry)


def sample_book():
    book = Book('Sample')
    book.add_chapter('Intro', 'intro.md')
    guide = book.add_chapter('Guide')
    book.add_chapter('Setup A', 'guide/setup_a.md', parent=guide)
    book.add_chapter('Setup B', 'guide/setup_b.md', parent=guide)
    return book


class TestArchivePaths(unittest.TestCase):

    def test_archive_name(self):
        self.assertEqual(archive_name('intro.md'), 'intro.xhtml')
        self.assertEqual(archive_name('guide/setup.md'), 'guide_setup.xhtml')

    def test_assign(self):
        book = sample_book()
        paths = assign_archive_paths(book)
        self.assertEqual(paths, {0: 'intro.xhtml',
                                 2: 'guide_setup_a.xhtml',
                                 3: 'guide_setup_b.xhtml'})

    def test_collisions(self):
        book = Book()
        book.add_chapter('A', 'a/b.md')
        book.add_chapter('B', 'a_b.md')
        book.add_chapter('Nav', 'nav.md')
        book.add_chapter('A again', 'a/b.md')
        paths = assign_archive_paths(book)
        self.assertEqual(paths[0], 'a_b.xhtml')
        self.assertEqual(paths[1], 'a_b-2.xhtml')
        self.assertEqual(paths[2], 'nav-2.xhtml')
        self.assertEqual(paths[3], 'a_b-3.xhtml')
        self.assertEqual(len(set(paths.values())), 4)

    def test_chapter_map_first_wins(self):
        book = Book()
        book.add_chapter('A', 'a.md')
        book.add_chapter('A again', './a.md')
        paths = assign_archive_paths(book)
        self.assertEqual(chapter_map(book, paths), {'a.md': 'a.xhtml'})

    def test_deterministic(self):
        self.assertEqual(assign_archive_paths(sample_book()),
                         assign_archive_paths(sample_book()))


class TestNavigation(unittest.TestCase):

    def test_spine_and_toc(self):
        book = sample_book()
        spine, toc = build_navigation(book, assign_archive_paths(book))

        self.assertEqual([book[i].title for i in spine], ['Intro', 'Setup A', 'Setup B'])

        self.assertEqual([e.title for e in toc], ['Intro', 'Guide'])
        self.assertEqual(toc[0].href, 'intro.xhtml')
        self.assertTrue(toc[1].is_heading())
        self.assertEqual([(e.title, e.href) for e in toc[1].children],
                         [('Setup A', 'guide_setup_a.xhtml'),
                          ('Setup B', 'guide_setup_b.xhtml')])

    def test_spine_is_preorder(self):
        book = Book()
        a = book.add_chapter('A', 'a.md')
        b = book.add_chapter('B', 'b.md')
        book.add_chapter('A1', 'a1.md', parent=a)
        a2 = book.add_chapter('A2', 'a2.md', parent=a)
        book.add_chapter('A2x', 'a2x.md', parent=a2)
        book.add_chapter('B1', 'b1.md', parent=b)
        spine, toc = build_navigation(book, assign_archive_paths(book))
        self.assertEqual([book[i].title for i in spine], ['A', 'A1', 'A2', 'A2x', 'B', 'B1'])
        self.assertEqual(toc[0].depth(), 3)

    def test_titles_verbatim(self):
        book = Book()
        book.add_chapter('  Odd <Title> & "stuff"  ', 'x.md')
        spine, toc = build_navigation(book, assign_archive_paths(book))
        self.assertEqual(toc[0].title, '  Odd <Title> & "stuff"  ')

    def test_first_href(self):
        heading = NavEntry('Part')
        sub = NavEntry('Sub')
        sub.children.append(NavEntry('Leaf', 'leaf.xhtml'))
        heading.children.append(NavEntry('Empty'))
        heading.children.append(sub)
        self.assertEqual(heading.first_href(), 'leaf.xhtml')
        self.assertIsNone(NavEntry('Nothing').first_href())

    def test_empty_book(self):
        spine, toc = build_navigation(Book(), {})
        self.assertEqual(spine, [])
        self.assertEqual(toc, [])


if __name__ == '__main__':
    unittest.main()
