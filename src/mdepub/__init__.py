#!/usr/bin/env python
#  -*- mode: python; indent-tabs-mode: nil; -*- coding: UTF8 -*-

"""

mdepub package

Distributable under the GNU General Public License Version 3 or newer.

Turns a book of Markdown chapters into an EPUB 3 file.

"""
