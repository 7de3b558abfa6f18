from setuptools import setup, find_packages

setup(
    name="trace-storage",
    version="0.1.0",
    description="Writes trace spans to daily Elasticsearch indexes with search and autocomplete fields",
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    package_dir={"": "src"},
    packages=find_packages(where="src", include=["trace_storage*"]),
    install_requires=[
        "elasticsearch[async]>=8.0.0,<10.0.0",
        "pydantic>=2.8.2",
        "pydantic-settings>=2.0.0",
        "python-dotenv",
    ],
    extras_require={
        "test": [
            "pytest",
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
    ],
    python_requires='>=3.11',
)
