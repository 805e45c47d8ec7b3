#!/usr/bin/env python

from setuptools import setup

setup(name='pyrmcp',
      version='0.1.0',
      description='Python IPMI 2.0 RMCP+ client implementation',
      author='Jarrod Johnson',
      author_email='jbjohnso@us.ibm.com',
      url='http://xcat.sf.net/',
      install_requires=['pycryptodome'],
      extras_require={'test': ['pytest']},
      packages=['pyrmcp', 'pyrmcp.ipmi', 'pyrmcp.ipmi.private',
                'pyrmcp.cmd'],
      entry_points={
          'console_scripts': ['pyrmcputil=pyrmcp.cmd.pyrmcputil:main'],
      },
      )
