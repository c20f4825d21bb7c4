from flask import Flask, request, jsonify, send_from_directory
import os
import asyncio
import datetime
import logging
import shutil
import threading
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from werkzeug.utils import secure_filename
from flask_cors import CORS

from panocube import config as pano_config
from panocube.converter import CancelToken, ConversionOptions, ConversionState, CubemapConversion, convert_sync
from panocube.errors import DecodeError, DegenerateInputError, PanocubeError
from panocube.faces import FACE_ORDER

app = Flask(__name__)
CORS(app)

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
DATA_DIR = os.path.join(BASE_DIR, '..', 'data')
OUTPUT_FOLDER = os.getenv("PANOCUBE_OUTPUT_FOLDER") or os.path.join(DATA_DIR, 'cubemaps')

app.config['OUTPUT_FOLDER'] = OUTPUT_FOLDER
app.config['MAX_CONTENT_LENGTH'] = 256 * 1024 * 1024
app.config['MAX_WORKERS'] = int(os.getenv("PANOCUBE_MAX_WORKERS") or "2")
app.config['JOB_TTL_SEC'] = float(os.getenv("PANOCUBE_JOB_TTL_SEC") or "3600")
app.config['MAX_JOBS'] = int(os.getenv("PANOCUBE_MAX_JOBS") or "200")

# Setup Logging
log_file = os.getenv("LOG_FILE") or os.path.join(BASE_DIR, 'flask_app.log')
handler = logging.FileHandler(log_file)
handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s: %(message)s'))
app.logger.addHandler(handler)
app.logger.setLevel(logging.DEBUG)

ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}

# Background conversion jobs, keyed by job id. Guarded by JOBS_LOCK.
JOBS = {}
JOBS_LOCK = threading.Lock()
EXECUTOR = ThreadPoolExecutor(max_workers=app.config['MAX_WORKERS'], thread_name_prefix="cubemap")

os.makedirs(OUTPUT_FOLDER, exist_ok=True)


class MissingSource(Exception):
    pass


def now_iso():
    return datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def allowed_file(filename):
    return '.' in filename and filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def parse_bool(val, default=False):
    if val is None or val == "":
        return default
    if isinstance(val, bool):
        return val
    return str(val).strip().lower() in ("1", "true", "yes", "on")


def parse_int(val, name, default):
    if val is None or val == "":
        return default
    if isinstance(val, bool):
        raise DegenerateInputError(f"{name} must be an integer")
    try:
        return int(val)
    except (TypeError, ValueError):
        raise DegenerateInputError(f"{name} must be an integer, got {val!r}") from None


def read_conversion_request():
    """
    Pull the panorama source and conversion options out of the current request.
    Accepts a multipart upload in `file` or a JSON body with `source` (URL or data URI).
    Returns (source, ConversionOptions, source_label).
    """
    upload = request.files.get("file")
    if upload is not None and upload.filename:
        if not allowed_file(upload.filename):
            raise DegenerateInputError(f"Unsupported file type: {upload.filename}")
        params = request.form
        source = upload.read()
        label = secure_filename(upload.filename)
    else:
        params = request.get_json(silent=True) or {}
        source = params.get("source")
        if not isinstance(source, str) or not source.strip():
            raise MissingSource("Provide a `file` upload or a JSON `source` (URL or data URI)")
        label = source[:64] if not source.startswith("data:") else "data URI"

    face_size = parse_int(params.get("face_size"), "face_size", pano_config.DEFAULT_FACE_SIZE)
    if face_size > pano_config.MAX_FACE_SIZE:
        raise DegenerateInputError(f"face_size must be at most {pano_config.MAX_FACE_SIZE}")
    options = ConversionOptions(
        face_size=face_size,
        high_quality=parse_bool(params.get("high_quality"), default=True),
        image_format=params.get("format") or "jpeg",
        quality=parse_int(params.get("quality"), "quality", pano_config.DEFAULT_QUALITY),
    )
    options.validate()
    return source, options, label


def error_response(e):
    if isinstance(e, MissingSource):
        return jsonify({"error": str(e), "code": "missing_source"}), 400
    if isinstance(e, DecodeError):
        return jsonify({"error": str(e), "code": "decode_error"}), 400
    if isinstance(e, DegenerateInputError):
        return jsonify({"error": str(e), "code": "invalid_options"}), 400
    app.logger.error(f"Cubemap conversion failed: {e}", exc_info=True)
    return jsonify({"error": str(e), "code": "conversion_failed"}), 500


@app.errorhandler(413)
def request_entity_too_large(error):
    limit_mb = app.config['MAX_CONTENT_LENGTH'] // (1024 * 1024)
    return jsonify({'error': 'File too large', 'details': f'The uploaded panorama exceeds the limit ({limit_mb}MB).'}), 413


@app.route('/api/status')
def status():
    return 'Hello, this is the panocube cubemap service!'


@app.route('/api/cubemap', methods=['POST'])
def cubemap_convert():
    try:
        source, options, label = read_conversion_request()
        app.logger.info(f"Sync cubemap conversion of {label} (face_size={options.face_size}, high_quality={options.high_quality})")
        faces = convert_sync(source, options)
    except Exception as e:
        return error_response(e)
    return jsonify({"faces": faces, "face_size": options.face_size, "format": options.image_format}), 200


def face_filename(face, image_format):
    return f"{face.value}{pano_config.IMAGE_FORMATS[image_format][1]}"


def run_job(job_id):
    with JOBS_LOCK:
        job = JOBS[job_id]
    conversion = job["conversion"]
    try:
        faces = asyncio.run(conversion.run())
        out_dir = os.path.join(app.config['OUTPUT_FOLDER'], job_id)
        os.makedirs(out_dir, exist_ok=True)
        urls = {}
        for face in FACE_ORDER:
            fn = face_filename(face, conversion.options.image_format)
            with open(os.path.join(out_dir, fn), "wb") as f:
                f.write(faces[face.value])
            urls[face.value] = f"/cubemaps/{job_id}/{fn}"
        with JOBS_LOCK:
            job["faces"] = urls
            mark_finished(job)
        app.logger.info(f"Cubemap job {job_id} complete")
    except PanocubeError as e:
        with JOBS_LOCK:
            job["error"] = str(e)
            mark_finished(job)
        app.logger.warning(f"Cubemap job {job_id} ended as {conversion.state.value}: {e}")
    except Exception as e:
        with JOBS_LOCK:
            job["error"] = f"{type(e).__name__}: {e}"
            mark_finished(job)
        app.logger.error(f"Cubemap job {job_id} crashed: {type(e).__name__}: {e}", exc_info=True)


def mark_finished(job):
    job["finished_at"] = now_iso()
    job["finished_ts"] = time.time()


def prune_jobs():
    """
    Drop finished jobs older than JOB_TTL_SEC, then the oldest finished ones while
    the table is at MAX_JOBS. Caller holds JOBS_LOCK. Returns the evicted job ids.
    """
    now = time.time()
    ttl = app.config['JOB_TTL_SEC']
    finished = sorted(
        (job["finished_ts"], job_id) for job_id, job in JOBS.items() if job.get("finished_ts") is not None
    )
    evicted = []
    for finished_ts, job_id in finished:
        if now - finished_ts >= ttl or len(JOBS) >= app.config['MAX_JOBS']:
            del JOBS[job_id]
            evicted.append(job_id)
    return evicted


def remove_job_files(job_ids):
    for job_id in job_ids:
        shutil.rmtree(os.path.join(app.config['OUTPUT_FOLDER'], job_id), ignore_errors=True)
        app.logger.info(f"Evicted cubemap job {job_id}")


def serialize_job(job):
    conversion = job["conversion"]
    state = conversion.state
    error = str(conversion.error) if conversion.error else job.get("error")
    if state is ConversionState.COMPLETE and job.get("faces") is None:
        # Conversion done: files are either still being written or could not be written.
        state = ConversionState.FAILED if job.get("finished_at") else ConversionState.RENDERING
    return {
        "job_id": job["id"],
        "state": state.value,
        "progress": round(conversion.progress, 2),
        "current_face": conversion.current_face.value if conversion.current_face else None,
        "face_size": conversion.options.face_size,
        "format": conversion.options.image_format,
        "error": error,
        "faces": job.get("faces"),
        "source": job["source_label"],
        "created_at": job["created_at"],
        "finished_at": job.get("finished_at"),
    }


@app.route('/api/cubemap/jobs', methods=['POST'])
def cubemap_job_create():
    try:
        source, options, label = read_conversion_request()
    except (MissingSource, PanocubeError) as e:
        return error_response(e)
    options.output = "bytes"
    options.cancel_token = CancelToken()
    job_id = uuid.uuid4().hex
    job = {
        "id": job_id,
        "conversion": CubemapConversion(source, options),
        "source_label": label,
        "created_at": now_iso(),
        "faces": None,
    }
    with JOBS_LOCK:
        evicted = prune_jobs()
        JOBS[job_id] = job
    remove_job_files(evicted)
    job["future"] = EXECUTOR.submit(run_job, job_id)
    app.logger.info(f"Queued cubemap job {job_id} for {label}")
    return jsonify({"job_id": job_id, "status_url": f"/api/cubemap/jobs/{job_id}"}), 202


@app.route('/api/cubemap/jobs/<job_id>', methods=['GET'])
def cubemap_job_get(job_id):
    with JOBS_LOCK:
        job = JOBS.get(job_id)
        if job is None:
            return jsonify({"error": "Job not found"}), 404
        payload = serialize_job(job)
    return jsonify(payload), 200


@app.route('/api/cubemap/jobs/<job_id>', methods=['DELETE'])
def cubemap_job_cancel(job_id):
    with JOBS_LOCK:
        job = JOBS.get(job_id)
        if job is None:
            return jsonify({"error": "Job not found"}), 404
        job["conversion"].options.cancel_token.cancel()
        payload = serialize_job(job)
    app.logger.info(f"Cancellation requested for cubemap job {job_id}")
    return jsonify(payload), 202


@app.route('/cubemaps/<job_id>/<path:filename>')
def cubemap_file(job_id, filename):
    return send_from_directory(app.config['OUTPUT_FOLDER'], f"{secure_filename(job_id)}/{filename}")


if __name__ == '__main__':
    app.run(host='0.0.0.0', port=int(os.getenv("PORT") or "5000"))
