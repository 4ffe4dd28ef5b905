# 安装 (开发模式)
# pip install -e .[test]
# 运行测试
# pytest test
from setuptools import setup, find_packages

setup(
    name="backtest_loop",  # 包名
    version="0.1.0",
    description="A temporal multi-stream event scheduler for replaying timestamped series in backtests.",
    author="Tan yue <1752633783@qq.com>",
    packages=find_packages(include=["backtest_loop", "backtest_loop.*"]),
    python_requires=">=3.9",

    # 定义运行时依赖
    install_requires=[
        "numpy",
        "pandas",
        "pyarrow",
        "loguru",
    ],
    extras_require={
        "test": ["pytest"],
    },

    zip_safe=False,
)
