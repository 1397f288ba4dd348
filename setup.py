import pathlib
import re

from setuptools import setup, find_packages


def read_version():
    version_path = pathlib.Path(__file__).resolve().parent / "stabsel" / "__init__.py"
    match = re.search(
        r"^__version__\s*=\s*[\"']([^\"']+)[\"']",
        version_path.read_text(encoding="utf8"),
        re.MULTILINE,
    )
    if not match:
        raise RuntimeError("Unable to find __version__ in stabsel/__init__.py")
    return match.group(1)

with open("README.md", encoding="utf8") as f:
    long_description = f.read()

setup(
    name='stabsel',
    version=read_version(),
    description='Stability selection with calibrated regularisation (lasso, graphical models, sparse PCA/PLS, clustering)',
    long_description=long_description,
    long_description_content_type='text/markdown',
    license='MIT',
    packages=find_packages(exclude=("tests*", "docs*", "examples*")),
    python_requires='>=3.8',
    install_requires=[
        'numba',
        'tqdm',
        'joblib',
        'pandas>=1.0.3',
        'numpy>=1.18.1',
        'scikit-learn>=1.2',
        'scipy',
    ],
    extras_require={
        'test': ['pytest'],
    },
    zip_safe=False
)
