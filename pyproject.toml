[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "rtpinterceptor"
version = "0.1.0"
description = "RTP/RTCP interceptor chains, TWCC feedback handling and Google Congestion Control building blocks"
requires-python = ">=3.10"
dependencies = []
keywords = ["rtp", "rtcp", "webrtc", "congestion-control", "gcc", "twcc", "pacer"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Communications :: Conferencing",
    "Topic :: System :: Networking",
    "Topic :: Software Development :: Libraries :: Python Modules",
]

[project.optional-dependencies]
test = ["pytest"]

[tool.hatch.build.targets.wheel]
packages = ["rtpinterceptor"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
