#!/usr/bin/env python
#  -*- mode: python; indent-tabs-mode: nil; -*- coding: utf-8 -*-

"""
MdEpub.py

Distributable under the GNU General Public License Version 3 or newer.

Stand-alone application to build an EPUB out of a tree of markdown
chapters.

"""

import argparse
import configparser
from concurrent.futures import ThreadPoolExecutor
import copy
import datetime
import os
import sys
import urllib.parse

import libgutenberg.GutenbergGlobals as gg
from libgutenberg import Logger
from libgutenberg.Logger import critical, debug, info, error, exception

from mdepub import CommonCode
from mdepub.CommonCode import (
    Options, Job, MdEpubError, SourceNotFound, OutOfScope, StructuralInvariantViolation,
    STYLESHEET_FILENAME, RESERVED_FILENAMES, split_list, is_within,
)
from mdepub.Book import Metadata
from mdepub.MarkdownRenderer import MarkdownRenderer
from mdepub.Navigation import assign_archive_paths, build_navigation, chapter_map
from mdepub.Resources import AssetResolver, build_stylesheet
from mdepub.Summary import load_book, SUMMARY_FILENAME
from mdepub.Version import VERSION
from mdepub.writers import EpubWriter

# store default command line args in [DEFAULT_ARGS] section of CONFIG_FILES[1]
CONFIG_FILES = ['/etc/mdepub.conf', os.path.expanduser('~/.mdepub')]

options = Options()


def render_chapters(renderer, book, paths, spine, jobs=None):
    """ Render all content chapters.

    Chapters are independent of each other and are rendered in a pool
    of threads. The result is in spine order whatever order the
    threads finish in.

    """

    chapters = [book[index] for index in spine]

    def render(chapter):
        return renderer.render(chapter, paths[chapter.index])

    if jobs == 1 or len(chapters) < 2:
        return list(map(render, chapters))

    with ThreadPoolExecutor(max_workers=jobs, thread_name_prefix='mdepub-render') as executor:
        return list(executor.map(render, chapters))


def gather_assets(documents, extra=()):
    """ All assets of all documents in reading order, each file once. """

    assets = []
    seen = set()
    for doc in documents:
        for asset in doc.assets:
            if asset.filename not in seen:
                seen.add(asset.filename)
                assets.append(asset)
    for root in extra:
        for asset in root.iter_tree():
            if asset.filename not in seen:
                seen.add(asset.filename)
                assets.append(asset)
    return assets


def resolve_cover(resolver, cover, src_dir):
    """ Get the Asset for the cover image file. """

    if not os.path.isabs(cover) and not os.path.exists(cover):
        cover = os.path.join(src_dir, cover)
    location = os.path.realpath(cover)
    if not is_within(location, resolver.src_dir):
        raise OutOfScope('Cover %s is outside of %s' % (cover, resolver.src_dir))
    reference = '/' + urllib.parse.quote(resolver.source_path(location))
    return resolver.resolve(reference)


def build_epub(book, src_dir, destination, metadata=None, jobs=None):
    """ Build an EPUB at destination out of book.

    Chapter sources and assets are looked up in src_dir. Returns the
    path of the written file. Raises one of the MdEpubError subclasses
    on failure, in which case no file is left at destination.

    """

    if not os.path.isdir(src_dir):
        raise SourceNotFound('Source directory %s not found' % src_dir)

    # the caller's metadata stays as it was
    metadata = copy.copy(metadata) if metadata is not None else Metadata()
    if metadata.title is None:
        metadata.title = book.title

    job = Job(book, src_dir, destination, metadata)

    book.load_content(src_dir)

    paths = assign_archive_paths(book)
    job.spine, job.toc = build_navigation(book, paths)
    if len(job.spine) != len(paths):
        raise StructuralInvariantViolation('Spine and archive paths disagree')

    resolver = AssetResolver(src_dir, RESERVED_FILENAMES | set(paths.values()))

    stylesheet_assets = []
    stylesheets = []
    if metadata.use_default_css or metadata.stylesheets:
        job.stylesheet, stylesheet_assets = build_stylesheet(
            resolver,
            EpubWriter.DEFAULT_CSS if metadata.use_default_css else None,
            metadata.stylesheets)
        stylesheets = [STYLESHEET_FILENAME]

    renderer = MarkdownRenderer(resolver, chapter_map(book, paths),
                                stylesheets=stylesheets,
                                language=metadata.language)

    documents = render_chapters(renderer, book, paths, job.spine, jobs)
    job.documents = dict((doc.index, doc) for doc in documents)

    if metadata.cover:
        job.cover = resolve_cover(resolver, metadata.cover, src_dir)

    job.assets = gather_assets(documents, stylesheet_assets)
    debug("Job:\n%s" % job)

    EpubWriter.Writer().build(job)
    return destination


def make_output_filename(title):
    """ Make a filename out of the book title. """
    return gg.string_to_filename(title)[:65] + '.epub'


def add_local_options(ap):
    """ Add local options to commandline. """

    ap.add_argument(
        '--version',
        action='version',
        version="%%(prog)s %s" % VERSION
    )

    ap.add_argument(
        "--summary",
        metavar="FILE",
        dest="summary",
        default=SUMMARY_FILENAME,
        help="chapter list, relative to the source directory (default: %(default)s)")

    ap.add_argument(
        "--output-file", "-o",
        metavar="FILENAME",
        dest="outputfile",
        default=None,
        help="output file (default: made from the title)")

    ap.add_argument(
        "--title",
        metavar="TITLE",
        dest="title",
        default=None,
        help="book title (default: first heading of the summary)")

    ap.add_argument(
        "--author",
        metavar="NAME",
        dest="authors",
        action="append",
        default=[],
        help="book author (may be given more than once)")

    ap.add_argument(
        "--language",
        metavar="LANG",
        dest="language",
        default=None,
        help="book language (default: en)")

    ap.add_argument(
        "--identifier",
        metavar="URN",
        dest="identifier",
        default=None,
        help="unique identifier (default: made from the title)")

    ap.add_argument(
        "--description",
        metavar="TEXT",
        dest="description",
        default=None,
        help="book description")

    ap.add_argument(
        "--css",
        metavar="FILE",
        dest="css",
        action="append",
        default=[],
        help="additional stylesheet (may be given more than once)")

    ap.add_argument(
        "--cover",
        metavar="FILE",
        dest="cover",
        default=None,
        help="cover image, must be inside the source directory")

    ap.add_argument(
        "--no-default-css",
        dest="use_default_css",
        action="store_false",
        help="don't use the built-in stylesheet")

    ap.add_argument(
        "--jobs", "-j",
        metavar="N",
        dest="jobs",
        type=int,
        default=None,
        help="number of chapters rendered at the same time (default: automatic)")

    ap.add_argument(
        "src_dir",
        metavar="SRC_DIR",
        help="directory containing the summary and the markdown sources")


def config(args=None):
    """ Process config files and commandline params. """

    ap = argparse.ArgumentParser(prog='mdepub')
    CommonCode.add_common_options(ap, CONFIG_FILES[1])
    add_local_options(ap)
    CommonCode.set_arg_defaults(ap, CONFIG_FILES[1])

    global options
    options.update(vars(CommonCode.parse_config_and_args(
        ap,
        CONFIG_FILES[0],
        None,
        args
    )))

    # lists from config files arrive as strings
    options.authors = split_list(options.authors)
    options.css = split_list(options.css)
    if isinstance(options.use_default_css, str):
        options.use_default_css = options.use_default_css.lower() in ('1', 'yes', 'true', 'on')
    options.src_dir = os.path.abspath(options.src_dir)


def main(args=None):
    """ Main program. """

    try:
        config(args)
    except configparser.Error as what:
        error("Error in configuration file: %s" % str(what))
        return 1

    Logger.set_log_level(options.verbose)
    start_time = datetime.datetime.now()

    try:
        book = load_book(options.src_dir, options.summary)
        metadata = Metadata(
            title=options.title or book.title,
            authors=options.authors,
            language=options.language,
            identifier=options.identifier,
            description=options.description,
            stylesheets=options.css,
            cover=options.cover,
            use_default_css=options.use_default_css)

        outputfile = options.outputfile or make_output_filename(metadata.get_title())
        info('Job starting for %s from %s' % (outputfile, options.src_dir))
        build_epub(book, options.src_dir, outputfile, metadata, options.jobs)

    except MdEpubError as what:
        critical('Building EPUB from %s failed' % options.src_dir)
        exception(what)
        return 1

    end_time = datetime.datetime.now()
    info(' Finished job. Total time: %s' % (end_time - start_time))
    return 0


if __name__ == "__main__":
    sys.exit(main())
