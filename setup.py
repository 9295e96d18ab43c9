"""cellcomm: a python-based package to infer ligand-receptor mediated cell-cell communications in scRNA-seq data.
"""
import setuptools

## setup
def main():
  setuptools.setup(name="cellcomm",
                  version="0.1.0",
                  description="a python-based method to infer ligand-receptor mediated cell-cell communication and its network patterns",
                  author='cellcomm developers',
                  zip_safe=False,
                  package_dir={"": "src"},
                  packages=setuptools.find_packages(where="src"),
                  package_data={"cellcomm": ["cellcomm.conf"]},
                  python_requires=">=3.8",
                  install_requires=[
                      "numpy",
                      "pandas",
                      "scipy",
                      "scanpy",
                      "statsmodels",
                      "scikit-learn",
                      "networkx",
                  ],
                  extras_require={
                      "test": ["pytest"],
                  },
                  classifiers=[
                      'Environment :: Console',
                      'Operating System :: POSIX',
                      "Topic :: Scientific/Engineering :: Bio-Informatics"],
                  keywords='Cell-cell communication',
                  license='OTHER'
  )
if __name__ == '__main__':
    ## setup
    main()
