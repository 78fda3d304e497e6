from setuptools import setup, find_packages

setup(name='benchkit',
      version='0.1.0',
      description='Python API wrapping lab bench instruments: waveform generators, oscilloscopes, stages, pumps and loggers.',
      author='Makidon Optics Lab',
      packages=find_packages(exclude=["*.tests", "*.tests.*"]),
      package_data={"benchkit": ["config.ini"]},
      install_requires=["astropy",
                        "numpy",
                        "picosdk",
                        "pyvisa",
                        "pyvisa-py"],
      extras_require={"test": ["pytest"]})
