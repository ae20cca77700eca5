from setuptools import setup, find_packages
from pathlib import Path

readme_path = Path(__file__).parent / "README.md"
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")
else:
    long_description = "Async adapters over the Firebase Admin SDK: Realtime Database, Firestore and Cloud Messaging."

setup(
    name="tdev_firebase",
    version="0.1.0",
    description="Async adapters over the Firebase Admin SDK: Realtime Database, Firestore and Cloud Messaging",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=[
        "firebase-admin>=6.2.0",
        "google-cloud-firestore>=2.11.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0",
        "typer>=0.9.0",
    ],
    entry_points={
        "console_scripts": [
            "tdev-firebase=tdev_firebase.cli:main",
        ],
    },
    extras_require={
        "dev": [
            "pytest",
            "coverage",
        ],
    },
)
