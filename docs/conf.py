# Configuration file for the Sphinx documentation builder.
# For full options, see the Sphinx documentation at https://www.sphinx-doc.org/en/master/config

import os
import sys
from pathlib import Path

# Make the spiso package importable without installing it
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

try:
    import tomllib  # Python 3.11+
except ImportError:
    import tomli as tomllib  # Python 3.10

project_root = Path(__file__).parent.parent
with open(project_root / 'pyproject.toml', 'rb') as f:
    version_str = tomllib.load(f)['project']['version']

# Project information
project = 'spiso'
copyright = '2026, spiso developers'
author = 'spiso developers'
version = version_str
release = version_str

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',        # NumPy-style docstrings
    'sphinx.ext.mathjax',         # Semivariogram and test statistic formulas
    'sphinx.ext.viewcode',
    'sphinx.ext.intersphinx',
    'myst_parser',
]

source_suffix = {
    '.rst': 'restructuredtext',
    '.md': 'markdown',
}

html_theme = 'pydata_sphinx_theme'
html_theme_options = {
    "logo": {"text": "spiso"},
    "show_toc_level": 2,
    "navigation_depth": 3,
}

napoleon_numpy_docstring = True
napoleon_google_docstring = False
napoleon_use_rtype = True
napoleon_include_init_with_doc = True

autodoc_default_options = {
    'members': True,
    'member-order': 'bysource',
    'show-inheritance': True,
}
autodoc_typehints = 'description'

intersphinx_mapping = {
    'python': ('https://docs.python.org/3', None),
    'numpy': ('https://numpy.org/doc/stable/', None),
    'scipy': ('https://docs.scipy.org/doc/scipy/', None),
    'pandas': ('https://pandas.pydata.org/docs/', None),
    'joblib': ('https://joblib.readthedocs.io/en/stable/', None),
}

suppress_warnings = ['ref.citation']
