import setuptools

setuptools.setup(
    name='dicebag',
    version='2.0.0',
    url='https://github.com/OwenFeik/roll.git',
    author='Owen Feik',
    author_email='owen.h.feik@gmail.com',
    description='For parsing, rolling and printing dice notation.',
    packages=setuptools.find_packages(exclude=['tests']),
    python_requires='>=3.6',
)
