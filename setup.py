from setuptools import setup, find_packages

setup(
    name="openaikit",
    version="1.0.0",
    description="Typed client and terminal tools for OpenAI-style APIs",
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    install_requires=[
        "requests",
        "httpx>=0.26",
        "rich",
        "python-dotenv",
        "prompt_toolkit",
        "typer",
        "pwinput",
        "pyperclip",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
        ],
    },
    entry_points={
        "console_scripts": [
            "openaikit=openaikit.main:main",
        ],
    },
    python_requires=">=3.8",
)
