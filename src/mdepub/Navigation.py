#!/usr/bin/env python
#  -*- mode: python; indent-tabs-mode: nil; -*- coding: UTF8 -*-

"""

Navigation.py

Distributable under the GNU General Public License Version 3 or newer.

Works out where each chapter goes in the package, the reading order
(spine) and the table of contents.

"""

import posixpath

from libgutenberg.Logger import debug

from mdepub.CommonCode import RESERVED_FILENAMES, XHTML_EXTENSION
from mdepub.Resources import make_href, unique_filename


class NavEntry(object):
    """ One entry in the table of contents.

    href is None for headings (separators without document).

    """

    def __init__(self, title, href=None):
        self.title = title
        self.href = href
        self.children = []


    def __repr__(self):
        return '<NavEntry %r %s %r>' % (self.title, self.href, self.children)


    def is_heading(self):
        return self.href is None


    def first_href(self):
        """ The first target in this subtree, in reading order. """
        if self.href is not None:
            return self.href
        for child in self.children:
            href = child.first_href()
            if href is not None:
                return href
        return None


    def depth(self):
        """ Number of levels in this subtree. """
        return 1 + max((child.depth() for child in self.children), default=0)


def archive_name(path):
    """ The flat package filename of a chapter source path.

    guide/setup.md -> guide_setup.xhtml

    All chapter documents live in the package root, so an archive path
    is a valid href from every document.

    """
    stem = posixpath.splitext(path)[0]
    return stem.replace('/', '_') + XHTML_EXTENSION


def assign_archive_paths(book):
    """ Map chapter index -> archive path for all content chapters.

    Clashes are resolved in reading order by appending -2, -3, ...

    """

    paths = {}
    used = set(RESERVED_FILENAMES)
    for chapter in book.content_chapters():
        name = archive_name(chapter.path)
        filename = unique_filename(name, used)
        if filename != name:
            debug('Chapter %s renamed to %s' % (chapter.path, filename))
        paths[chapter.index] = filename
    return paths


def chapter_map(book, paths):
    """ Map chapter source path -> archive path.

    If the same source appears twice, links go to the first one.

    """
    map_ = {}
    for chapter in book.content_chapters():
        map_.setdefault(chapter.path, paths[chapter.index])
    return map_


def build_navigation(book, paths):
    """ Build spine and table of contents.

    Returns the list of chapter indices in reading order (pre-order,
    separators excluded) and the list of top-level NavEntry.

    """

    spine = [chapter.index for chapter in book.walk() if chapter.index in paths]

    def visit(chapter):
        href = paths.get(chapter.index)
        entry = NavEntry(chapter.title, make_href(href) if href else None)
        entry.children = [visit(child) for child in book.children(chapter.index)]
        return entry

    toc = [visit(book[index]) for index in book.roots]
    return spine, toc
