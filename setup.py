from setuptools import setup

version = '0.1'

with open("README.md", "r", encoding="utf-8") as f:
    long_descr = f.read()

setup(
    name='pysnowmix',
    packages=['pysnowmix'],
    version=version,
    license='Apache 2.0',
    description='Control a Snowmix video and audio mixer',
    long_description=long_descr,
    long_description_content_type='text/markdown',
    author='johnno',
    author_email='johnno@example.com',
    url='https://github.com/johnno/pysnowmix',
    download_url=f'https://github.com/johnno/pysnowmix/archive/{version}.tar.gz',
    keywords=['Snowmix', 'Audio Mixer', 'Video Mixer'],
    install_requires=[],
    extras_require={
        'test': ['pytest>=7.0'],
    },
    python_requires='>=3.10',
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Developers',
        'Topic :: Multimedia :: Sound/Audio :: Mixers',
        'License :: OSI Approved :: Apache Software License',
        'Programming Language :: Python :: 3.10'
    ],
)
