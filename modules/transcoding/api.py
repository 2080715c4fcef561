"""
流 API 端点

/rest/stream 输出（可能经过转码的）媒体流，支持按预计长度的 HTTP Range。
"""

import logging
import mimetypes

from flask import jsonify, request, Response, stream_with_context

from .errors import UpstreamReadError

logger = logging.getLogger(__name__)

# 全局流服务实例（在 webserver.py 中初始化）
STREAM_SERVICE = None
# 请求 -> MediaFile
MEDIA_FILE_RESOLVER = None
# 请求 -> Player
PLAYER_RESOLVER = None


def init_stream_api(stream_service, media_file_resolver, player_resolver):
    """初始化流 API

    Args:
        stream_service: StreamService 实例
        media_file_resolver: 根据请求返回 MediaFile（找不到时返回 None）
        player_resolver: 根据请求返回 Player
    """
    global STREAM_SERVICE, MEDIA_FILE_RESOLVER, PLAYER_RESOLVER
    STREAM_SERVICE = stream_service
    MEDIA_FILE_RESOLVER = media_file_resolver
    PLAYER_RESOLVER = player_resolver
    logger.info("Stream API initialized")


def get_mime_type(suffix):
    if suffix and suffix.lower() == "ts":
        return "video/MP2T"
    mime_type, _ = mimetypes.guess_type(f"file.{suffix or ''}")
    return mime_type or "application/octet-stream"


def _create_range(media_file, expected_length):
    """从 Range 头或 offsetSeconds 参数创建范围

    Returns:
        (start, stop)，stop 不包含；未请求范围时返回 None
    """
    if request.range is not None:
        if request.range.units != "bytes" or len(request.range.ranges) != 1 or expected_length is None:
            return None
        return request.range.range_for_length(expected_length) or (expected_length, expected_length)

    offset_seconds = request.args.get("offsetSeconds")
    if offset_seconds is None or media_file.duration_seconds in (None, 0) or expected_length is None:
        return None
    try:
        offset = float(offset_seconds)
    except ValueError:
        logger.error(f"Failed to parse and convert time offset: {offset_seconds}")
        return None
    # 时间偏移换算为字节偏移
    start = int(expected_length * (offset / media_file.duration_seconds))
    return min(start, expected_length), expected_length


def _skip(stream, count):
    if count <= 0:
        return
    if stream.seekable():
        stream.seek(count)
        return
    remaining = count
    while remaining > 0:
        chunk = stream.read(min(remaining, 65536))
        if not chunk:
            break
        remaining -= len(chunk)


def register_routes(app):
    """注册流 API 路由

    Args:
        app: Flask 应用实例
    """

    @app.route('/rest/stream', methods=['GET', 'HEAD'])
    @app.route('/stream', methods=['GET', 'HEAD'])
    def stream_media():
        """输出媒体流

        查询参数：id / path、format、maxBitRate、timeOffset、duration、size、hls、
        offsetSeconds、playlist（播客）、parallel（不终止该播放器的其他流）。
        """
        if STREAM_SERVICE is None:
            return "Stream service not initialized", 500

        media_file = MEDIA_FILE_RESOLVER(request)
        if media_file is None:
            return "Media file not found", 404
        player = PLAYER_RESOLVER(request)

        transcoding_service = STREAM_SERVICE.transcoding_service
        is_rest = request.path.startswith('/rest/')
        is_podcast = request.args.get('playlist') is not None
        # parallel=true：与该播放器的其他流并存（例如嵌入式播放器）
        is_single_file = request.args.get('parallel', 'false').lower() == 'true'

        fmt = STREAM_SERVICE.get_format(request.args.get('format'), player, is_rest)
        max_bit_rate = request.args.get('maxBitRate', type=int)

        video_settings = None
        if media_file.is_video:
            video_settings = STREAM_SERVICE.create_video_transcoding_settings(
                media_file,
                max_bit_rate=max_bit_rate,
                time_offset=request.args.get('timeOffset', 0, type=int),
                duration=request.args.get('duration', type=int),
                size=request.args.get('size'),
                hls=request.args.get('hls', 'false').lower() == 'true'
            )

        parameters = transcoding_service.get_parameters(media_file, player, max_bit_rate, fmt, video_settings)
        expected_length = parameters.expected_length

        headers = {}
        if video_settings is not None and video_settings.hls:
            mimetype = get_mime_type("ts")  # HLS 始终为 MPEG TS
        else:
            suffix = parameters.transcoding.target_format if parameters.is_transcode else media_file.format
            mimetype = get_mime_type(suffix)
            if media_file.duration_seconds is not None:
                headers['X-Content-Duration'] = f"{float(media_file.duration_seconds):.1f}"

        status_code = 200
        start, limit = 0, None
        if media_file.is_video or not parameters.range_allowed:
            # 分块传输，不接受 Range
            headers['Accept-Ranges'] = 'none'
        else:
            headers['Accept-Ranges'] = 'bytes'
            byte_range = _create_range(media_file, expected_length)
            if byte_range is None:
                limit = expected_length
            else:
                start, stop = byte_range
                if start >= stop:
                    return Response(status=416, headers={'Content-Range': f"bytes */{expected_length}"})
                status_code = 206
                limit = stop - start
                headers['Content-Range'] = f"bytes {start}-{stop - 1}/{expected_length}"
            if limit is not None:
                headers['Content-Length'] = str(limit)

        if request.method == 'HEAD':
            logger.debug(f"Header request for [{media_file.path}]")
            return Response(status=status_code, headers=headers, mimetype=mimetype)

        try:
            status, stream = STREAM_SERVICE.start_stream(player, parameters, is_podcast, is_single_file)
        except IOError as e:
            logger.error(f"Failed to open stream for {media_file.path}: {e}")
            return getattr(e, 'public_message', "Failed to open stream"), 500

        buffer_size = STREAM_SERVICE.config.buffer_size
        logger.info(f"Streaming request for [{media_file.path}] with range [{headers.get('Content-Range')}]")

        def generate():
            written = 0
            try:
                try:
                    _skip(stream, start)
                    while not status.is_terminated:
                        chunk = stream.read(buffer_size)
                        if not chunk:
                            break
                        if limit is not None:
                            if written + len(chunk) > limit:
                                logger.warning(
                                    f"Stream output exceeded expected length of {limit}. It is likely that "
                                    f"the transcoder is not adhering to the bitrate limit or the media "
                                    f"source is corrupted or has grown larger")
                                chunk = chunk[:limit - written]
                        yield chunk
                        written += len(chunk)
                        status.add_bytes_transferred(len(chunk))
                        if limit is not None and written >= limit:
                            break
                except ValueError:
                    # 其他线程终止流时关闭了输入流
                    if not status.is_terminated:
                        raise

                remaining = None if limit is None else limit - written
                if status.is_terminated:
                    logger.info(f"Transfer was interrupted. (Player: id={player.id}, user={player.username})")
                    # 被新流替换时稍后发送一段填充数据，避免客户端立即重连
                    if not (is_podcast or is_single_file) and remaining != 0:
                        for chunk in STREAM_SERVICE.iter_dummy_delayed(remaining, buffer_size):
                            yield chunk
                elif parameters.is_transcode and remaining:
                    # 转码输出比预计短时补齐，避免 Content-Length 错误
                    for chunk in STREAM_SERVICE.iter_dummy(remaining, buffer_size):
                        yield chunk
            except UpstreamReadError as e:
                logger.error(f"Stream interrupted for {media_file.path}: {e}")
            finally:
                stream.close()
                STREAM_SERVICE.status_service.remove_stream_status(status)

        return Response(stream_with_context(generate()), status=status_code, headers=headers, mimetype=mimetype)

    @app.route('/rest/stream/statuses', methods=['GET'])
    def stream_statuses():
        """获取当前所有流的状态"""
        if STREAM_SERVICE is None:
            return jsonify({"error": "Stream service not initialized"}), 500

        statuses = [s.to_dict() for s in STREAM_SERVICE.status_service.get_all_stream_statuses()]
        return jsonify({"success": True, "streams": statuses})


def get_stream_service():
    """获取流服务实例

    Returns:
        StreamService 实例
    """
    return STREAM_SERVICE
