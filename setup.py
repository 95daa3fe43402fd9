from setuptools import find_packages, setup

setup(
    name="gip",
    version="0.1.0",
    packages=find_packages(
        include=[
            "gip_common",
            "gip_common.*",
            "gip_persistence",
            "gip_persistence.*",
            "gip_builder",
            "gip_builder.*",
            "gip_registry",
            "gip_registry.*",
            "gip_server",
            "gip_server.*",
            "gip_runner",
            "gip_runner.*",
            "gip_admin",
            "gip_admin.*",
        ]
    ),
    install_requires=[
        "requests>=2.31.0",
        "fastapi>=0.104.0",
        "pydantic>=2.0",
        "uvicorn>=0.24.0",
        "aiosqlite>=0.19.0",
        "click>=8.1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-xdist>=3.3.0",
            "httpx>=0.25.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "gip-server=gip_server.__main__:main",
            "gip-runner=gip_runner.__main__:main",
            "gip-admin=gip_admin.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
