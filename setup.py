from setuptools import setup, find_packages

setup(
    name='glslforge',
    version='0.1.0',
    author='nassimberrada',
    author_email='your.email@example.com',
    description='Assemble GLSL fragment shaders at runtime from plugin-provided functions and argument expressions.',
    long_description=open('README.md').read(),
    long_description_content_type='text/markdown',
    url='https://github.com/yourusername/glslforge',
    packages=find_packages(exclude=['tests', 'tests.*', 'examples', 'examples.*']),
    include_package_data=True,
    install_requires=[
        'numpy',
        'watchdog',
        'moderngl',
        'glfw',
    ],
    extras_require={
        'test': [
            'pytest',
        ]
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Topic :: Multimedia :: Graphics',
        'Topic :: Software Development :: Code Generators',
    ],
    python_requires='>=3.8',
)
