[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "ipfscrawl"
version = "0.1.0"
description = "Asynchronous indexing components for IPFS content: document models, OpenSearch and Redis indexes, a caching index and metadata extractors."
requires-python = ">=3.10"
keywords = ["ipfs", "search", "opensearch", "redis", "indexing", "tika", "cbor", "lz4"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Framework :: AsyncIO",
    "Topic :: Internet :: WWW/HTTP :: Indexing/Search",
    "Topic :: Software Development :: Libraries :: Python Modules",
]
dependencies = [
    "httpx>=0.24",
    "redis>=4.5",
    "cbor2>=5.4",
    "lz4>=4.0",
]

[project.optional-dependencies]
test = [
    "pytest>=7.0",
    "pytest-asyncio>=0.21",
    "respx>=0.20",
]

[tool.hatch.build.targets.wheel]
packages = ["ipfscrawl"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
