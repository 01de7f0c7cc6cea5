#!/usr/bin/env python
#  -*- mode: python; indent-tabs-mode: nil; -*- coding: UTF8 -*-

"""

Resources.py

Distributable under the GNU General Public License Version 3 or newer.

Finds the local files a book references, assigns them their place in
the package and works out their media types.

"""

import logging
import os
import posixpath
import threading
import urllib.parse

import cssutils

from libgutenberg.Logger import debug, warning
from libgutenberg.MediaTypes import mediatypes as mt

from mdepub.CommonCode import SourceNotFound, OutOfScope, decode_text, is_within

DEFAULT_MEDIATYPE = 'application/octet-stream'

# EPUB core media types, and the ones the system table tends to get wrong
MEDIATYPES = {
    'css': 'text/css',
    'gif': 'image/gif',
    'jpeg': 'image/jpeg',
    'jpg': 'image/jpeg',
    'png': 'image/png',
    'svg': 'image/svg+xml',
    'webp': 'image/webp',
    'xhtml': 'application/xhtml+xml',
    'js': 'application/javascript',
    'otf': 'font/otf',
    'ttf': 'font/ttf',
    'woff': 'font/woff',
    'woff2': 'font/woff2',
    'mp3': 'audio/mpeg',
    'm4a': 'audio/mp4',
    'mp4': 'video/mp4',
    'smil': 'application/smil+xml',
}

cssutils.log.setLog(logging.getLogger('cssutils'))
# logging.DEBUG is way too verbose
cssutils.log.setLevel(max(cssutils.log.getEffectiveLevel(), logging.INFO))


def guess_mediatype(filename):
    """ Guess the media type from the file extension. """

    ext = os.path.splitext(filename)[1][1:].lower()
    if not ext.isalnum():
        return DEFAULT_MEDIATYPE
    if ext in MEDIATYPES:
        return MEDIATYPES[ext]
    try:
        return getattr(mt, ext) or DEFAULT_MEDIATYPE
    except (AttributeError, KeyError):
        return DEFAULT_MEDIATYPE


def is_local(url):
    """ True if url is a relative or absolute path without scheme and host. """
    parts = urllib.parse.urlsplit(url)
    return not (parts.scheme or parts.netloc) and bool(parts.path)


def unique_filename(name, used):
    """ Append -2, -3, ... to the stem of name until it is not in used.

    guide.xhtml -> guide-2.xhtml

    The result is added to used.

    """
    filename = name
    count = 1
    while filename in used:
        count += 1
        stem, ext = posixpath.splitext(name)
        filename = '%s-%d%s' % (stem, count, ext)
    used.add(filename)
    return filename


def make_href(filename, fragment=None):
    """ Make an href from an archive path. """
    href = urllib.parse.quote(filename)
    if fragment:
        href += '#' + fragment
    return href


class Asset(object):
    """ A local file the book depends on.

    filename is the path inside the package (relative to the OEBPS
    directory), location_on_disk the canonical source path.

    """

    def __init__(self, reference, location_on_disk, filename, mediatype, data):
        self.reference = reference
        self.location_on_disk = location_on_disk
        self.filename = filename
        self.mediatype = mediatype
        self.data = data
        self.dependencies = []


    def __repr__(self):
        return '<Asset %s %s>' % (self.filename, self.mediatype)


    def iter_tree(self):
        """ Iterate over this asset and everything it depends on. """
        seen = set()
        stack = [self]
        while stack:
            asset = stack.pop()
            if asset.filename in seen:
                continue
            seen.add(asset.filename)
            yield asset
            stack.extend(reversed(asset.dependencies))


class AssetResolver(object):
    """ Resolve references to local files.

    Every distinct file is read once and registered under its canonical
    path. The archive path is the path relative to the source root, so
    two references to the same file always get the same archive path.
    Names in reserved (chapter documents and generated package files)
    are never handed out, a file that would land on one gets a -2 or -3
    suffix instead.

    The same resolver is shared by all chapter renderers, the map is
    guarded by a lock.

    """

    def __init__(self, src_dir, reserved=()):
        self.src_dir = os.path.realpath(src_dir)
        self.lock = threading.RLock()
        self.assets = {}
        self.used = set(reserved)


    def source_path(self, location):
        """ Map a canonical source path to a path relative to the source root. """
        return os.path.relpath(location, self.src_dir).replace(os.sep, '/')


    def locate(self, reference, base_dir=''):
        """ Find the canonical source path of reference.

        reference is relative to base_dir, which in turn is relative to
        the source root. An absolute reference is relative to the source
        root. If the file is not found relative to base_dir, it is looked
        up relative to the source root.

        """

        path = urllib.parse.unquote(urllib.parse.urlsplit(reference).path)
        if not path:
            raise SourceNotFound('Empty reference')

        if path.startswith('/'):
            candidates = [path.lstrip('/')]
        else:
            candidates = [posixpath.join(base_dir, path)]
            if base_dir:
                candidates.append(path)

        for candidate in candidates:
            location = os.path.realpath(os.path.join(self.src_dir, *candidate.split('/')))
            if not is_within(location, self.src_dir):
                raise OutOfScope('%s resolves to %s, which is outside of %s' % (
                    reference, location, self.src_dir))
            if os.path.isfile(location):
                return location

        raise SourceNotFound('Asset %s not found in %s' % (
            reference, os.path.join(self.src_dir, base_dir)))


    def resolve(self, reference, base_dir=''):
        """ Return the Asset for reference. """

        location = self.locate(reference, base_dir)
        with self.lock:
            asset = self.assets.get(location)
            if asset is None:
                asset = self._load(reference, location)
                # register before following links, stylesheets may import each other
                self.assets[location] = asset
                if asset.mediatype == 'text/css':
                    self._add_stylesheet_dependencies(asset)
        return asset


    def _load(self, reference, location):
        path = self.source_path(location)
        filename = unique_filename(path, self.used)
        if filename != path:
            warning('%s clashes with a package file, packaged as %s' % (path, filename))
        mediatype = guess_mediatype(location)
        debug("Adding asset %s (%s)" % (filename, mediatype))
        try:
            with open(location, 'rb') as fp:
                data = fp.read()
        except OSError as what:
            raise SourceNotFound('Unable to open asset %s (%s)' % (location, what.strerror)) from what
        return Asset(reference, location, filename, mediatype, data)


    def _add_stylesheet_dependencies(self, asset):
        """ Register the files a stylesheet pulls in.

        The package keeps the source layout, so relative urls in the
        stylesheet stay valid. The stylesheet is only rewritten if a file
        it refers to got renamed.

        """

        parser = cssutils.CSSParser(validate=False)
        sheet = parser.parseString(decode_text(asset.data, asset.filename))
        base_dir = posixpath.dirname(self.source_path(asset.location_on_disk))
        renamed = []

        def rewrite(url):
            if not is_local(url):
                return url
            try:
                dependency = self.resolve(url, base_dir)
            except SourceNotFound as what:
                warning('In stylesheet %s: %s' % (asset.filename, what))
                return url
            asset.dependencies.append(dependency)
            if dependency.filename == self.source_path(dependency.location_on_disk):
                return url
            renamed.append(dependency.filename)
            return make_href(
                posixpath.relpath(dependency.filename, posixpath.dirname(asset.filename)),
                urllib.parse.urlsplit(url).fragment)

        cssutils.replaceUrls(sheet, rewrite)
        if renamed:
            debug('Rewriting urls to %s in %s' % (', '.join(renamed), asset.filename))
            asset.data = sheet.cssText


def build_stylesheet(resolver, default_css=None, stylesheets=()):
    """ Concatenate the default css and the user stylesheets.

    Returns the stylesheet as bytes and the assets it refers to. The
    result lives at the package root, so the urls in stylesheets from
    inside the source directory are rewritten to archive paths.
    Stylesheets outside the source directory cannot bring assets along.

    """

    parts = []
    assets = []

    if default_css:
        parts.append(default_css.encode('utf-8'))

    for path in stylesheets:
        location = os.path.realpath(path)
        debug("Adding stylesheet %s" % location)
        try:
            with open(location, 'rb') as fp:
                text = decode_text(fp.read(), path)
        except OSError as what:
            raise SourceNotFound('Unable to open stylesheet %s (%s)' % (
                path, what.strerror)) from what

        if is_within(location, resolver.src_dir):
            base_dir = posixpath.dirname(resolver.source_path(location))
        else:
            base_dir = None

        def rewrite(url):
            if not is_local(url):
                return url
            if base_dir is None:
                warning('Cannot package %s from stylesheet %s outside of %s' % (
                    url, path, resolver.src_dir))
                return url
            try:
                asset = resolver.resolve(url, base_dir)
            except SourceNotFound as what:
                warning('In stylesheet %s: %s' % (path, what))
                return url
            assets.append(asset)
            return make_href(asset.filename, urllib.parse.urlsplit(url).fragment)

        sheet = cssutils.CSSParser(validate=False).parseString(text)
        cssutils.replaceUrls(sheet, rewrite)
        parts.append(sheet.cssText)

    return b'\n\n'.join(parts), assets
