#!/usr/bin/env python


"""
CommonCode.py

Distributable under the GNU General Public License Version 3 or newer.

Common code for the mdepub modules: options, configuration, errors and
the job that carries one book through the pipeline.

"""
import configparser
import os
import re

import chardet

from libgutenberg.CommonOptions import Options
from libgutenberg.Logger import debug, error

class Struct(object):
    pass

options = Options()

# names of the generated package files, relative to the OEBPS directory
OPF_FILENAME = 'content.opf'
NAV_FILENAME = 'nav.xhtml'
NCX_FILENAME = 'toc.ncx'
STYLESHEET_FILENAME = 'mdepub.css'
COVERPAGE_FILENAME = 'cover.xhtml'

RESERVED_FILENAMES = frozenset((
    OPF_FILENAME, NAV_FILENAME, NCX_FILENAME, STYLESHEET_FILENAME, COVERPAGE_FILENAME))

SOURCE_EXTENSION = '.md'
XHTML_EXTENSION = '.xhtml'


class MdEpubError(Exception):
    """ Base class of all errors raised while building an EPUB. """


class SourceNotFound(MdEpubError):
    """ A referenced asset or chapter source file is missing. """


class OutOfScope(SourceNotFound):
    """ A reference resolves to a file outside of the book source root. """


class RenderFailure(MdEpubError):
    """ A chapter could not be turned into XHTML. """


class PackagingIOFailure(MdEpubError):
    """ Writing the output archive failed. """


class StructuralInvariantViolation(MdEpubError):
    """ An internal consistency check failed. This is a bug. """


class Job(object):
    """Hold 'globals' for a job.

    A job is one book going from its chapter tree to one EPUB file.

    """

    def __init__(self, book, src_dir, outputfile, metadata):
        self.book = book
        self.src_dir = src_dir
        self.outputfile = outputfile
        self.metadata = metadata

        self.documents = {}   # chapter index -> RenderedDocument
        self.assets = []
        self.spine = []
        self.toc = []
        self.stylesheet = None
        self.cover = None


    def __str__(self):
        l = []
        for k, v in self.__dict__.items():
            l.append("%s: %s" % (k, v))
        return '\n'.join(l)


def decode_text(data, name=''):
    """ Decode file contents to unicode.

    Try utf-8 first, then whatever chardet guesses, then windows-1252.
    Line endings are normalized.

    """

    def charsets():
        yield 'utf_8_sig'
        yield chardet.detect(data).get('encoding')
        yield 'windows-1252'
        yield 'iso-8859-1'  # never fails

    for charset in charsets():
        if charset is None:
            continue
        try:
            debug("Trying to decode %s with charset %s ..." % (name, charset))
            text = data.decode(charset)
            break
        except LookupError as what:
            # unknown charset
            error("Invalid charset name: %s (%s)" % (charset, what))
        except UnicodeError as what:
            debug("%s not in charset %s (%s)" % (name, charset, what))

    if '\r' in text or '\u2028' in text:
        text = '\n'.join(text.splitlines())
    return text


def add_common_options(ap, user_config_file):
    """ Add options common to all programs. """

    ap.add_argument(
        "--verbose", "-v",
        action="count",
        default=0,
        help="be verbose (-v -v be more verbose)")

    ap.add_argument(
        "--config",
        metavar="CONFIG_FILE",
        dest="config_file",
        action="store",
        default=user_config_file,
        help="read config file (default: %(default)s)")


def set_arg_defaults(ap, config_file):
    # get default command-line args
    cp = configparser.ConfigParser()
    cp.read(config_file)
    if cp.has_section('DEFAULT_ARGS'):
        ap.set_defaults(**dict(cp.items('DEFAULT_ARGS')))


def parse_config_and_args(ap, sys_config, defaults=None, args=None):

    # put command-line args into options
    options.update(vars(ap.parse_args(args)))

    cp = configparser.ConfigParser()
    cp.read((sys_config, options.config_file))

    options.config = Struct()

    for name, value in (defaults or {}).items():
        setattr(options.config, name.upper(), value)

    for section in cp.sections():
        for name, value in cp.items(section):
            setattr(options.config, name.upper(), value)

    return options


RE_SPLIT_LIST = re.compile(r'\s*[,\n]\s*')

def split_list(value):
    """ Split a comma or newline separated config value into a list. """
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [v for v in RE_SPLIT_LIST.split(value.strip()) if v]


def is_within(path, root):
    """ True if canonical path lies inside canonical directory root. """
    try:
        return os.path.commonpath((path, root)) == root
    except ValueError:
        # different drives on windows
        return False
