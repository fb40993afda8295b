"""一键启动疲劳检测 Web 服务 - 双击此文件即可运行"""

import os
import sys
import threading
import time
import webbrowser

# 确保工作目录为脚本所在目录
os.chdir(os.path.dirname(os.path.abspath(__file__)))

# 添加项目根目录到 sys.path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

REQUIRED_PACKAGES = [
    ("flask", "flask"),
    ("opencv-python", "cv2"),
    ("mediapipe", "mediapipe"),
    ("numpy", "numpy"),
    ("httpx", "httpx"),
    ("pygame", "pygame"),
]


def open_browser():
    """延迟 1.5 秒后自动打开浏览器"""
    time.sleep(1.5)
    webbrowser.open("http://localhost:5000/api/data")


def missing_dependencies():
    """返回未安装的依赖包名列表"""
    missing = []
    for pkg, import_name in REQUIRED_PACKAGES:
        try:
            __import__(import_name)
        except ImportError:
            missing.append(pkg)
    return missing


if __name__ == "__main__":
    print("=" * 50)
    print("  疲劳检测系统 - 启动中...")
    print("=" * 50)

    missing = missing_dependencies()
    if missing:
        print("缺少以下依赖，请先执行 pip install -e . 安装:")
        print(", ".join(missing))
        sys.exit(1)

    from utils.logger import setup_logging
    setup_logging()

    threading.Thread(target=open_browser, daemon=True).start()

    print("\n系统已启动！浏览器将自动打开...")
    print("访问地址: http://localhost:5000")
    print("按 Ctrl+C 停止服务\n")

    from web_app import app
    app.run(host="0.0.0.0", port=5000, debug=False, threaded=True)
