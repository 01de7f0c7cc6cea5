#!/usr/bin/env python
#  -*- mode: python; indent-tabs-mode: nil; -*- coding: UTF8 -*-

"""

Summary.py

Distributable under the GNU General Public License Version 3 or newer.

Reads the chapter tree of a book from a SUMMARY.md file in the style
of mdBook:

# The Book Title

[Preface](preface.md)

- [Introduction](intro.md)
- [Guide]()
  - [Setup](guide/setup.md)
  - Draft chapter

# Part Two

- [More](more.md)

---

[Appendix](appendix.md)

The first heading is the book title, later headings start a part. List
items are chapters, nested by indentation. Items without a link target
are separators.

"""

import os
import re
import urllib.parse

from libgutenberg.Logger import debug

from mdepub.CommonCode import SourceNotFound, decode_text
from mdepub.Book import Book

SUMMARY_FILENAME = 'SUMMARY.md'

TAB_WIDTH = 4

RE_HEADING = re.compile(r'^\s*#+\s+(.*?)(?:\s+#+)?\s*$')
RE_LIST_ITEM = re.compile(r'^(\s*)[-*+]\s+(.*?)\s*$')
RE_LINK = re.compile(r'^\[(.*)\]\(\s*([^)]*?)\s*\)$')
RE_RULE = re.compile(r'^\s*([-*_])(\s*\1){2,}\s*$')
RE_COMMENT = re.compile(r'^\s*<!--.*-->\s*$')


def parse_item(text):
    """ Return (title, path) of a summary entry. path is None for separators. """

    m = RE_LINK.match(text)
    if m is None:
        return text, None
    title, path = m.group(1), m.group(2)
    path = urllib.parse.unquote(urllib.parse.urlsplit(path).path) if path else None
    return title, path or None


def parse_summary(text, title=None):
    """ Build a Book out of the text of a summary file. """

    book = Book(title)
    stack = []    # (indent, chapter index) of the open list items
    part = None   # the current part separator

    for lineno, line in enumerate(text.splitlines(), 1):
        if not line.strip() or RE_COMMENT.match(line):
            continue

        if RE_RULE.match(line):
            stack = []
            part = None
            continue

        m = RE_HEADING.match(line)
        if m:
            stack = []
            if book.title is None and len(book) == 0:
                book.title = m.group(1)
            else:
                part = book.add_chapter(m.group(1))
            continue

        m = RE_LIST_ITEM.match(line)
        if m:
            indent = len(m.group(1).expandtabs(TAB_WIDTH))
            while stack and stack[-1][0] >= indent:
                stack.pop()
            parent = stack[-1][1] if stack else part
            title, path = parse_item(m.group(2))
            index = book.add_chapter(title, path, parent=parent)
            stack.append((indent, index))
            continue

        if RE_LINK.match(line.strip()):
            # prefix and suffix chapters
            stack = []
            part = None
            title, path = parse_item(line.strip())
            book.add_chapter(title, path)
            continue

        debug('%s line %d ignored: %s' % (SUMMARY_FILENAME, lineno, line))

    return book


def load_book(src_dir, summary=SUMMARY_FILENAME):
    """ Read the summary file in src_dir into a Book. """

    filename = os.path.join(src_dir, summary)
    debug("Reading summary %s ..." % filename)
    try:
        with open(filename, 'rb') as fp:
            text = decode_text(fp.read(), summary)
    except OSError as what:
        raise SourceNotFound('Cannot read summary %s (%s)' % (filename, what.strerror)) from what

    return parse_summary(text)
