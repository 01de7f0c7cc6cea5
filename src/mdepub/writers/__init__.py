#!/usr/bin/env python
#  -*- mode: python; indent-tabs-mode: nil; -*- coding: UTF8 -*-

"""

Writer package

Distributable under the GNU General Public License Version 3 or newer.

Base class for *Writer modules.

"""

from lxml import etree

import libgutenberg.GutenbergGlobals as gg
from libgutenberg.Logger import debug

from mdepub.CommonCode import Options

options = Options()


class BaseWriter(object):
    """ Base class for EpubWriter. """

    def build(self, job):
        """ override this in a real writer """
        pass


def serialize_xml(root, doctype=None):
    """ Serialize an lxml tree as unicode string with XML declaration. """

    # Ugly workaround for error: "Serialisation to unicode must not
    # request an XML declaration"

    xml = "%s\n%s" % (gg.XML_DECLARATION,
                      etree.tostring(root,
                                     doctype=doctype,
                                     encoding=str,
                                     pretty_print=True))
    if (getattr(options, 'verbose', 0) or 0) >= 3:
        debug(xml)
    return xml
