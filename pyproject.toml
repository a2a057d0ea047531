[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "spotlink"
version = "1.0.0"
description = "Parking service API: notification and parking-lot storage, validation, uploads, rate limiting, CORS and a WSGI application"
requires-python = ">=3.10"
dependencies = []
keywords = ["parking", "wsgi", "api", "rate-limiting", "cors", "uploads"]
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
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
spotlink = "spotlink.app:main"

[tool.hatch.build.targets.wheel]
packages = ["spotlink"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
