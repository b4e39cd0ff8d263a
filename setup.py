from setuptools import setup

# Read version from portzap/VERSION
with open('portzap/VERSION') as f:
    VERSION = f.read().strip()

setup(
    name='portzap',
    version=VERSION,
    description='Find, kill, watch and wait on processes bound to network ports',
    long_description=open('README.md', encoding='utf-8').read(),
    long_description_content_type='text/markdown',
    license='MIT',
    classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'Intended Audience :: Developers',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: MIT License',
        'Operating System :: POSIX :: Linux',
        'Operating System :: MacOS',
        'Operating System :: Microsoft :: Windows',
        'Programming Language :: Python :: 3',
        'Topic :: System :: Networking :: Monitoring',
        'Topic :: Utilities',
    ],
    python_requires='>=3.8',
    packages=['portzap', 'portzap.platform'],
    package_data={'portzap': ['VERSION']},
    install_requires=[
        'psutil',
        'pyyaml',
    ],
    extras_require={
        'test': ['pytest'],
    },
    entry_points={
        'console_scripts': [
            'portzap=portzap.cli:cli_entry',
        ],
    },
)
