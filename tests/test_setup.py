#!/usr/bin/env python
# -*- coding: utf-8 -*-
'''
run this with
python -m unittest -v tests.test_setup
'''
import argparse
import os
import tempfile
import unittest

from libgutenberg import Logger

from mdepub import CommonCode
from mdepub.CommonCode import Options, split_list
from mdepub.MdEpub import add_local_options, config, make_output_filename

options = Options()


class TestConfig(unittest.TestCase):

    def setUp(self):
        self.tmp = tempfile.TemporaryDirectory()
        self.config_file = os.path.join(self.tmp.name, 'mdepub.conf')
        with open(self.config_file, 'w') as fp:
            fp.write('[DEFAULT_ARGS]\n'
                     'jobs = 3\n'
                     'language = de\n'
                     '\n'
                     '[paths]\n'
                     'cachedir = /tmp/cache\n')

    def tearDown(self):
        self.tmp.cleanup()

    def test_config(self):
        config([self.tmp.name, '--title', 'A Title', '--author', 'Jane Doe',
                '--css', 'a.css', '--css', 'b.css', '--no-default-css',
                '--config', self.config_file, '-v'])
        Logger.set_log_level(options.verbose)

        self.assertEqual(options.src_dir, os.path.abspath(self.tmp.name))
        self.assertEqual(options.title, 'A Title')
        self.assertEqual(options.authors, ['Jane Doe'])
        self.assertEqual(options.css, ['a.css', 'b.css'])
        self.assertFalse(options.use_default_css)
        self.assertEqual(options.summary, 'SUMMARY.md')
        self.assertEqual(options.verbose, 1)
        self.assertEqual(options.config.CACHEDIR, '/tmp/cache')
        self.assertFalse(hasattr(options.config, 'TIMESTAMP'))

    def test_default_args(self):
        ap = argparse.ArgumentParser(prog='mdepub')
        CommonCode.add_common_options(ap, self.config_file)
        add_local_options(ap)
        CommonCode.set_arg_defaults(ap, self.config_file)
        args = ap.parse_args([self.tmp.name])
        self.assertEqual(args.jobs, 3)
        self.assertEqual(args.language, 'de')
        self.assertTrue(args.use_default_css)

    def test_split_list(self):
        self.assertEqual(split_list('a.css, b.css\nc.css'), ['a.css', 'b.css', 'c.css'])
        self.assertEqual(split_list(['x']), ['x'])
        self.assertEqual(split_list(None), [])

    def test_output_filename(self):
        filename = make_output_filename('My Book')
        self.assertTrue(filename.endswith('.epub'))


if __name__ == '__main__':
    unittest.main()
