from setuptools import setup, find_packages

setup(
    name='postindex',
    version='0.1.0',
    packages=find_packages(include=['postindex', 'postindex.*']),
    entry_points={
        'console_scripts': [
            'postindex=postindex.cli:main',
        ],
    },
    install_requires=[
        'python-dotenv',
        'pydantic>=2',
        'pyyaml',
        'requests',
        'aiohttp',
        'click',
        'beautifulsoup4',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-asyncio',
        ],
    },
    author='While True Industries',
    author_email='adam@whiletrue.industries',
    description='Incremental semantic search sync and related posts for static sites',
    python_requires='>=3.10',
)
