from setuptools import setup

setup(
    name='treecommittee',
    version='1.0',
    py_modules=[
        'cli',
        'classify',
        'combine_models',
        'committee',
        'dataset',
        'errors',
        'forest_io',
        'forest_trainer',
        'learn',
        'oob',
        'split_search',
        'tree_builder',
    ],
    install_requires=['numpy'],
    extras_require={'test': ['pytest']},
    entry_points={
        'console_scripts': [
            'learn-forest=learn:main',
            'classify-forest=classify:main',
            'combine-models=combine_models:main',
        ],
    },
    description='Bagged, boosted and random forest committees of decision trees',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
)
