from setuptools import setup, find_packages
import re

module_file = open("osdremove/__init__.py").read()
metadata = dict(re.findall(r"__([a-z]+)__\s*=\s*['\"]([^'\"]*)['\"]", module_file))
long_description = open('README.rst').read()

setup(
    name='ceph-osd-remove',
    version=metadata['version'],
    packages=find_packages(exclude=['*.test', 'scripts.test']),
    author='Inktank Storage, Inc.',
    author_email='ceph-devel@vger.kernel.org',
    description='Remove OSDs from a Rook managed Ceph cluster',
    license='MIT',
    keywords='ceph rook osd remove purge cluster',
    url='https://github.com/ceph/ceph',
    long_description=long_description,
    classifiers=[
        'Environment :: Console',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Natural Language :: English',
        'Operating System :: POSIX :: Linux',
        'Programming Language :: Python :: 3',
        'Topic :: System :: Distributed Computing',
        'Topic :: System :: Filesystems',
    ],
    python_requires='>=3.7',
    install_requires=['gevent',
                      'PyYAML',
                      'docopt',
                      'kubernetes',
                      'urllib3',
                      'prettytable',
                      ],
    extras_require = {
        'test': [
            'pytest',
            'tox',
        ]
    },

    entry_points={
        'console_scripts': [
            'ceph-osd-remove = scripts.remove:main',
            ],
        },

    )
