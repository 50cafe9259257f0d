import os
import sys
from setuptools import setup


package_basename = 'pyxirmu'
sys.path.insert(0, os.path.join(os.path.dirname(__file__), package_basename))
import _version
version = _version.__version__


setup(name=package_basename,
      version=version,
      author='cosmodesi',
      author_email='',
      description='Anisotropic correlation function of a distorted power spectrum, with calibrated multipole transforms',
      license='BSD3',
      url='http://github.com/cosmodesi/pyxirmu',
      install_requires=['numpy', 'scipy'],
      extras_require={'extras': ['pyfftw'], 'test': ['pytest', 'matplotlib']},
      packages=['pyxirmu']
)
