from setuptools import setup, find_packages

setup(
    name="kube-ephemeral",
    version="0.1.0",
    description="Create, follow and clean up ephemeral Kubernetes resources through kubectl.",
    packages=find_packages(include=["kube_ephemeral", "kube_ephemeral.*"]),
    include_package_data=True,
    python_requires=">=3.9",
    install_requires=[
        "pydantic>=2",
        "PyYAML>=6",
        "rich>=13",
        "typer>=0.9",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "kube-ephemeral=kube_ephemeral.cli:main",
        ],
    },
)
