from setuptools import setup


setup(
    name = 'mpiga',
    version = '0.1.0',
    description = 'Multipatch hierarchical Isogeometric Analysis in Python',
    long_description = 'mpiga provides multipatch spline bases with interface matching and repair\n'
                       'of hierarchical meshes, together with visitor-based element assembly\n'
                       'for convection-diffusion-reaction problems.',

    classifiers=[
        'Programming Language :: Python :: 3',
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'Topic :: Scientific/Engineering :: Mathematics',
        'Topic :: Scientific/Engineering :: Physics',
    ],
    packages = ['mpiga'],

    python_requires = '>=3.6',
    install_requires = [
        'numpy>=1.11',
        'scipy',
        'networkx',
        'tqdm',
    ],
    extras_require = {
        'test': ['pytest'],
    },
)
