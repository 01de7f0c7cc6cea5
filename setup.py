#
# mdepub distribution
#

from setuptools import setup

VERSION = '0.3.1'

setup (
    name = 'mdepub',
    version = VERSION,

    package_dir = {'': 'src'},
    packages = [
        'mdepub',
        'mdepub.writers',
    ],

    entry_points = {
        'console_scripts': [
            'mdepub = mdepub.MdEpub:main',
        ],
    },

    install_requires = [
        'pillow>=8.3.2',
        'chardet',
        'cssutils',
        'lxml',
        'markdown>=3.0',
        'libgutenberg>=0.8.11',
    ],

    extras_require = {
        'test': ['pytest'],
    },

    python_requires = '>=3.7',

    # metadata for upload to PyPI

    author = "The mdepub authors",
    description = "Turn a book of Markdown chapters into an EPUB 3 file.",
    long_description = open ('README.md', encoding='utf-8').read (),
    long_description_content_type = 'text/markdown',
    license = "GPL v3",
    keywords = "ebook epub markdown mdbook format conversion",

    classifiers = [
        "Topic :: Text Processing",
        "License :: OSI Approved :: GNU General Public License (GPL)",
        "Environment :: Console",
        "Operating System :: OS Independent",
        "Intended Audience :: Other Audience",
        "Programming Language :: Python",
        "Programming Language :: Python :: 3",
    ],

    platforms = 'OS-independent'
)
