from setuptools import setup, find_packages

setup(
    name="p2pchat",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=["pynacl>=1.5.0", "pyyaml>=6.0"],
    extras_require={"test": ["pytest>=7.0", "pytest-asyncio>=0.21"]},
    entry_points={"console_scripts": ["p2pchat=p2pchat.cli:main"]},
    description="Two-party encrypted chat over UDP with opportunistic peer discovery",
)
