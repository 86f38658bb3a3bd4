from setuptools import setup, find_packages

setup(name='genflow',
      version='0.1.0',
      description='Write callback-based asynchronous code as straight-line generators',
      classifiers=[
          "Programming Language :: Python :: 3",
          "License :: OSI Approved :: MIT License",
          "Operating System :: OS Independent",
      ],
      keywords='coroutine generator callback trio',
      license='MIT',
      python_requires='>=3.11',
      install_requires=[
          'trio>=0.22',
          'outcome>=1.2',
          'typeguard>=3',
      ],
      extras_require={
          'test': ['pytest'],
      },
      packages=find_packages(),
)
