#!/usr/bin/env python3
# -*- coding: utf-8 -*-

import os
import atexit
import sys
import json
import threading
import logging
from logging.handlers import TimedRotatingFileHandler

# Add current directory to Python path to ensure modules can be imported
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from flask import Flask
from flask_cors import CORS
from werkzeug.utils import safe_join

from modules.transcoding import (
    InMemorySettings,
    MediaFile,
    MediaType,
    Player,
    StatusService,
    StreamService,
    TranscodeScheme,
    TranscodingRepository,
    TranscodingService,
    UserSettings,
    get_transcoding_config,
)
from modules.transcoding import api as stream_api

# Configuration file path
CONFIG_FILE = "config/config.json"

VIDEO_FORMATS = {"avi", "mpg", "mpeg", "mp4", "m4v", "mkv", "mov", "wmv", "ogv", "divx", "m2ts", "flv", "webm", "ts"}


def setup_logging(log_dir='logs'):
    """Configure console and daily rotating file logging"""
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')

    # 配置较少日志输出的模块
    for module in ['werkzeug', 'urllib3']:
        logging.getLogger(module).setLevel(logging.WARNING)

    os.makedirs(log_dir, exist_ok=True)

    # 添加按日期滚动的文件处理器
    file_handler = TimedRotatingFileHandler(
        os.path.join(log_dir, 'webserver.log'),
        when='midnight',
        interval=1,
        backupCount=3  # 保留3天日志
    )
    file_handler.setFormatter(logging.Formatter('%(asctime)s - %(levelname)s - %(message)s'))
    file_handler.setLevel(logging.INFO)
    logging.getLogger().addHandler(file_handler)


def load_config(config_file=CONFIG_FILE):
    """Load configuration file"""
    config = {
        "media_folder": "music",
        "users": {},
        "transcoding": {
            "home_dir": "data",
            "preferred_format": "mp3",
            "preferred_format_scheme": "anonymous",
            "verbose_log_playing": False,
            "max_workers": 32
        }
    }
    try:
        if os.path.exists(config_file):
            with open(config_file, 'r', encoding='utf-8') as f:
                loaded_config = json.load(f)
                config.update(loaded_config)
                logging.info(f"Loaded configuration file: {config_file}")
        else:
            # Create config directory if it doesn't exist
            os.makedirs(os.path.dirname(config_file) or '.', exist_ok=True)
            # Save default config
            with open(config_file, 'w', encoding='utf-8') as f:
                json.dump(config, f, ensure_ascii=False, indent=2)
                logging.info(f"Created default configuration file: {config_file}")
    except (OSError, ValueError) as e:
        logging.error(f"Failed to load configuration file: {str(e)}")

    return config


class MediaFolder:
    """Resolve media files by path below the configured media folder"""

    def __init__(self, root):
        self.root = os.path.abspath(root)

    def __call__(self, req):
        relative = req.args.get('path') or req.args.get('id')
        if not relative:
            return None
        path = safe_join(self.root, relative)
        if path is None or not os.path.isfile(path):
            return None
        fmt = os.path.splitext(path)[1].lstrip('.').lower()
        return MediaFile(
            path=path,
            format=fmt,
            media_type=MediaType.VIDEO if fmt in VIDEO_FORMATS else MediaType.MUSIC,
            title=os.path.splitext(os.path.basename(path))[0],
            file_size=os.path.getsize(path),
        )


class PlayerRegistry:
    """One player per (client, user) pair, registered on first request"""

    def __init__(self, transcodings):
        self.transcodings = transcodings
        self.players = {}
        self.lock = threading.Lock()

    def __call__(self, req):
        username = req.args.get('u') or 'anonymous'
        client = req.args.get('c') or 'web'
        player_id = f"{username}-{client}"
        with self.lock:
            player = self.players.get(player_id)
            if player is None:
                player = Player(id=player_id, name=client, username=username, ip_address=req.remote_addr)
                self.players[player_id] = player
                self.transcodings.register_player(player)
        return player


def create_app(app_config=None):
    """Create the Flask application with the stream endpoints"""
    app_config = app_config if app_config is not None else load_config()
    config = get_transcoding_config(app_config)

    transcodings = TranscodingRepository.from_config(config.transcodings)
    settings = InMemorySettings(
        UserSettings(name, TranscodeScheme.from_name(scheme))
        for name, scheme in (app_config.get("users") or {}).items()
    )
    transcoding_service = TranscodingService(config, transcodings, settings)
    stream_service = StreamService(config, transcoding_service, StatusService())
    # 进程退出时终止所有转码进程
    atexit.register(stream_service.shutdown)

    stream_api.init_stream_api(
        stream_service,
        MediaFolder(app_config.get("media_folder", "music")),
        PlayerRegistry(transcodings)
    )

    # Initialize Flask application
    app = Flask(__name__)
    CORS(app)  # Enable CORS
    stream_api.register_routes(app)
    logging.info(f"Using transcoder directory: {transcoding_service.get_transcode_directory()}")
    return app


if __name__ == '__main__':
    setup_logging()
    port = int(os.environ.get('PORT', 8080))
    create_app().run(host='0.0.0.0', port=port, threaded=True)
