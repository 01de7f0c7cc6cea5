#!/usr/bin/env python
#  -*- mode: python; indent-tabs-mode: nil; -*- coding: UTF8 -*-

"""

Version.py

Distributable under the GNU General Public License Version 3 or newer.

"""

VERSION = '0.3.1'
GENERATOR = 'mdepub %s'
