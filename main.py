#!/usr/bin/env python3
"""
ccman - AI 编程工具配置管理

主入口文件，可以通过 python main.py 或安装后的 ccman 命令使用。
"""

from ccman.cli import main

if __name__ == "__main__":
    main()
