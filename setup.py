import os
from setuptools import setup


base_dir = os.path.dirname(__file__)
about = {}
with open(os.path.join(base_dir, "pdfsig", "__init__.py")) as f:
    exec(f.read(), about)

try:
    long_description = open("README.rst", "r").read()
except Exception:
    long_description = None


setup(
    name="pdfsig",
    version=about["__version__"],
    packages=[
        "pdfsig",
        "pdfsig.asn1",
        "pdfsig.pdf",
        "pdfsig.pkcs7",
        "pdfsig.x509",
    ],
    package_data={"pdfsig": ["py.typed"]},
    include_package_data=True,
    license="MIT",
    description="Module to verify the digital signatures of PDF documents",
    long_description=long_description,
    python_requires=">=3.9",
    install_requires=[
        "asn1crypto>=1.3,<2",
        "cryptography>=3.4",
        "pikepdf>=8",
        "typing_extensions>=4.6.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": ["pdfsig=pdfsig.pdf.cli:main"],
    },
    keywords=["pdf", "signature", "cms", "pades", "timestamp"],
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "Intended Audience :: Developers",
        "Intended Audience :: Legal Industry",
        "Intended Audience :: System Administrators",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Security :: Cryptography",
        "Topic :: Utilities",
    ],
)
