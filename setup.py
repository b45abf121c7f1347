#
from setuptools import setup, find_namespace_packages

def get_version():
    """
    Get version number from the false_negatives package.

    The easiest way would be to just ``import false_negatives``, but note that
    this may fail if the dependencies have not been installed yet. Instead,
    the version number lives in a simple version_info module, imported here
    by temporarily adding the package directory to the pythonpath.
    """
    import os
    import sys

    sys.path.append(os.path.abspath(os.path.join('src', 'false_negatives')))
    from version_info import VERSION as version
    sys.path.pop()

    return version

def get_readme():
    """
    Load README.md text for use as description.
    """
    with open('README.md') as f:
        return f.read()

setup(
    # Module name (lowercase)
    name='pcr-false-negatives',

    # Version
    version=get_version(),

    description='Probability of infection after a negative RT-PCR test, by day since exposure.',

    long_description=get_readme(),

    long_description_content_type='text/markdown',

    license='MIT license',

    python_requires='>=3.10',

    # Packages to include (no __init__ files, so namespace discovery)
    package_dir={'': 'src'},
    packages=find_namespace_packages(
        where='src',
        include=('false_negatives', 'false_negatives.*'),
        exclude=('false_negatives.tests', 'false_negatives.tests.*'),
    ),

    # List of dependencies
    install_requires=[
        # Dependencies go here!
        'numpy',
        'matplotlib',
        'pandas',
        'scipy',
        'pymc>=5.10',
        'arviz>=0.13,<1.0',
    ],
    extras_require={
        'docs': [
            # Sphinx for doc generation. Version 1.7.3 has a bug:
            'sphinx>=1.5, !=1.7.3',
            # Nice theme for docs
            'sphinx_rtd_theme',
        ],
        'dev': [
            # Flake8 for code style checking
            'flake8>=3',
            'pytest',
            'pytest-cov',
        ],
    },
    entry_points={
        'console_scripts': [
            'pcr-false-negatives=false_negatives.runner:main',
        ],
    },
)
