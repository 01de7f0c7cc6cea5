#!/usr/bin/env python
#  -*- mode: python; indent-tabs-mode: nil; -*- coding: UTF8 -*-

"""

Book.py

Distributable under the GNU General Public License Version 3 or newer.

The book model handed to the pipeline: a tree of chapters kept in a
flat list, plus the book metadata.

"""

import os
import posixpath
import uuid

from libgutenberg.Logger import debug

from mdepub.CommonCode import SourceNotFound, OutOfScope, decode_text, is_within

DEFAULT_LANGUAGE = 'en'
DEFAULT_TITLE = 'Untitled'


def normalize_source_path(path):
    """ Make path a normalized, relative posix path. """
    path = path.replace('\\', '/')
    path = posixpath.normpath(path.lstrip('/'))
    return path


class Chapter(object):
    """ One node of the chapter tree.

    A chapter without path is a separator (a part title or a draft
    chapter). It produces no content document, only a heading in the
    table of contents.

    """

    def __init__(self, index, title, path=None, content=None, depth=0, parent=None):
        self.index = index
        self.title = title
        self.path = normalize_source_path(path) if path else None
        self.content = content
        self.depth = depth
        self.parent = parent
        self.children = []


    def __str__(self):
        return self.title


    def __repr__(self):
        return '<Chapter %d %r %s>' % (self.index, self.title, self.path)


    def is_separator(self):
        return self.path is None


    def source_dir(self):
        """ The chapter directory relative to the source root. """
        if self.path is None:
            return ''
        return posixpath.dirname(self.path)


class Book(object):
    """ The chapter tree.

    Chapters live in `chapters`, indexed by position. Each chapter
    keeps the indices of its children, `roots` those of the top-level
    chapters. Sibling order is reading order.

    """

    def __init__(self, title=None):
        self.title = title
        self.chapters = []
        self.roots = []


    def __len__(self):
        return len(self.chapters)


    def __getitem__(self, index):
        return self.chapters[index]


    def add_chapter(self, title, path=None, content=None, parent=None):
        """ Append a chapter as last child of parent (or as top-level
        chapter) and return its index. """

        index = len(self.chapters)
        depth = 0 if parent is None else self.chapters[parent].depth + 1
        self.chapters.append(Chapter(index, title, path, content, depth, parent))
        if parent is None:
            self.roots.append(index)
        else:
            self.chapters[parent].children.append(index)
        return index


    def children(self, index):
        return [self.chapters[i] for i in self.chapters[index].children]


    def walk(self):
        """ Iterate over all chapters in pre-order. """
        stack = list(reversed(self.roots))
        while stack:
            chapter = self.chapters[stack.pop()]
            yield chapter
            stack.extend(reversed(chapter.children))


    def content_chapters(self):
        """ Iterate over chapters that produce a document, in reading order. """
        return (chapter for chapter in self.walk() if not chapter.is_separator())


    def load_content(self, src_dir):
        """ Read the markdown of all chapters that don't have it yet. """

        src_dir = os.path.realpath(src_dir)
        for chapter in self.content_chapters():
            if chapter.content is not None:
                continue
            filename = os.path.realpath(os.path.join(src_dir, *chapter.path.split('/')))
            if not is_within(filename, src_dir):
                raise OutOfScope('Chapter "%s": %s is outside of %s' % (
                    chapter.title, chapter.path, src_dir))
            debug("Reading chapter %s ..." % filename)
            try:
                with open(filename, 'rb') as fp:
                    chapter.content = decode_text(fp.read(), chapter.path)
            except OSError as what:
                raise SourceNotFound('Chapter "%s": cannot read %s (%s)' % (
                    chapter.title, chapter.path, what.strerror)) from what


class Metadata(object):
    """ Book metadata that goes into the package document.

    stylesheets and cover are file system paths. The cover must lie
    inside the book source directory.

    """

    def __init__(self, title=None, authors=None, language=None, identifier=None,
                 description=None, stylesheets=None, cover=None, use_default_css=True):
        self.title = title
        self.authors = list(authors or [])
        self.language = language or DEFAULT_LANGUAGE
        self.identifier = identifier
        self.description = description
        self.stylesheets = list(stylesheets or [])
        self.cover = cover
        self.use_default_css = use_default_css


    def get_title(self):
        return self.title or DEFAULT_TITLE


    @property
    def opf_identifier(self):
        """ The unique identifier. Stable across runs if not given. """
        if self.identifier:
            return self.identifier
        return 'urn:uuid:%s' % uuid.uuid5(uuid.NAMESPACE_URL, 'mdepub:' + self.get_title())
