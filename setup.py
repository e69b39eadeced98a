from setuptools import setup, find_packages

setup(
    name='bundlehub',
    version='0.1.0',
    description='Client-side registry for versioned content bundles',
    package_dir={'': 'src'},
    packages=find_packages(where='src'),
    python_requires='>=3.9',
    install_requires=[
        'aiohttp',
        'aiofiles',
        'packaging',
        'platformdirs',
        'PyYAML',
        'rich',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': [
            'bundlehub=bundlehub.cli:main',
        ],
    },
)
