"""
Setup script for FlashChat - Serverless, link-shareable encrypted conversations.

Created by orpheus497

This messenger provides:
- No servers: the whole conversation travels inside a share link
- Ephemeral P-256 ECDH key exchange embedded in the first message
- AES-256-GCM encryption of every message after the exchange
- Idempotent merging of links into a local store
"""

from setuptools import setup, find_packages
import os

this_directory = os.path.abspath(os.path.dirname(__file__))
with open(os.path.join(this_directory, 'README.md'), encoding='utf-8') as f:
    long_description = f.read()

setup(
    name='flashchat',
    version='1.0.0',
    author='orpheus497',
    description='Serverless two-party encrypted conversations carried entirely in a share link',
    long_description=long_description,
    long_description_content_type='text/markdown',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    classifiers=[
        'Development Status :: 4 - Beta',
        'Intended Audience :: End Users/Desktop',
        'Topic :: Communications :: Chat',
        'Topic :: Security :: Cryptography',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Operating System :: OS Independent',
        'Environment :: Console',
    ],
    python_requires='>=3.9',
    install_requires=[
        'cryptography>=42.0.4',
        'argon2-cffi>=23.1.0',
        'rich>=13.7.0',
        'aiofiles>=23.2.1',
        'tomli>=2.0.1; python_version < "3.11"',
    ],
    extras_require={
        'test': [
            'pytest>=7.4.0',
            'pytest-asyncio>=0.23.0',
        ],
    },
    entry_points={
        'console_scripts': [
            'flashchat=flashchat.main:main',
        ],
    },
)
