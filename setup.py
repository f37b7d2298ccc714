from setuptools import setup, find_packages

setup(
    name="clinic-billing",
    version="1.0.0",
    description="Clinic billing fee computation and invoice aggregation",
    author="Clinic Billing Team",
    packages=find_packages(include=["clinic_billing", "clinic_billing.*"]),
    py_modules=["billing_cli"],
    install_requires=[
        "pandas>=2.0.0",
        "pydantic>=2.0.0",
    ],
    extras_require={
        "test": ["pytest>=7.0.0"],
    },
    python_requires=">=3.8",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Healthcare Industry",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
