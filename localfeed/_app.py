import json
import logging
import typing as t

from bottle import BaseRequest, Bottle, request, response

from . import __version__
from .backend import IFeedStore
from .config import RunConfig
from .core import Result
from .engine import DEFAULT_ERROR_MSG, IPackageService
from .environment import Environment
from .errors import StatusCode
from .session import PackageSession, SessionRegistry

if Environment.LOCALFEED_BOTTLE_MEMFILE_MAX_OVERRIDE_BYTES:
    BaseRequest.MEMFILE_MAX = Environment.LOCALFEED_BOTTLE_MEMFILE_MAX_OVERRIDE_BYTES


log = logging.getLogger(__name__)
config: RunConfig
store: IFeedStore
service: IPackageService
sessions: SessionRegistry

app = Bottle()

SESSION_COOKIE = "localfeed-session"
# The form field `nuget push` uploads the package in
PACKAGE_FIELD = "package"

HTTP_STATUS = {
    StatusCode.OK: 200,
    StatusCode.NOT_FOUND: 404,
    StatusCode.CONFLICT: 409,
    StatusCode.BAD_REQUEST: 400,
}


@app.hook("before_request")
def log_request():
    log.info(config.log_req_frmt, request.environ)


@app.hook("after_request")
def log_response():
    log.info(
        config.log_res_frmt,
        {
            "response": response,
            "status": response.status,
            "headers": response.headers,
            "body": response.body,
            "cookies": response._cookies,  # pylint: disable=protected-access
        },
    )


@app.hook("after_request")
def add_cors_headers():
    if not config.cors_origin:
        return
    response.set_header("Access-Control-Allow-Origin", config.cors_origin)
    response.set_header("Access-Control-Allow-Methods", "GET, PUT, OPTIONS")
    response.set_header(
        "Access-Control-Allow-Headers", "Content-Type, X-NuGet-ApiKey"
    )


def _json(status: int, payload: t.Any) -> str:
    response.status = status
    response.content_type = "application/json"
    return json.dumps(payload)


def _error_body(http_error) -> str:
    response.content_type = "application/json"
    return json.dumps({"message": http_error.body or http_error.status_line})


@app.error(404)
@app.error(405)
def log_client_error(http_error):
    log.info("%s %s: %s", request.method, request.path, http_error.status_line)
    return _error_body(http_error)


@app.error(500)
def log_server_error(http_error):
    log.error(config.log_err_frmt, vars(http_error))
    return _error_body(http_error)


def _session() -> PackageSession:
    key, session = sessions.get(request.get_cookie(SESSION_COOKIE))
    response.set_cookie(SESSION_COOKIE, key, path="/", httponly=True)
    return session


def _failure(result: Result) -> str:
    return _json(
        HTTP_STATUS[result.status],
        {"message": result.message or DEFAULT_ERROR_MSG},
    )


@app.route("/favicon.ico")
def favicon():
    response.status = 404
    return ""


@app.route("/")
def root():
    try:
        numpkgs = store.package_count()
    except Exception as exc:  # pylint: disable=broad-except
        log.error(f"Could not count packages: {exc}")
        numpkgs = 0

    response.content_type = "text/plain; charset=utf-8"
    return (
        f"localfeed {__version__}: local nuget feed serving {numpkgs} "
        f"packages.\n\n"
        f"Push with:  nuget push <package.nupkg> -Source {request.url}\n"
    )


@app.route("/", method="OPTIONS")
@app.route("/<path:path>", method="OPTIONS")
def preflight(path=None):  # pylint: disable=unused-argument
    response.status = 204
    return ""


@app.put("/")
@app.put("/api/v2/package")
@app.put("/api/v2/package/")
def push():
    upload = request.files.get(PACKAGE_FIELD)
    if upload is None:
        # nuget clients differ in how they name the form field
        upload = next(iter(request.files.values()), None)
    if upload is None:
        return _json(400, {"message": f"Missing '{PACKAGE_FIELD}' file-field!"})

    result = service.push(upload.raw_filename, upload.file)
    if not result.success:
        return _failure(result)

    _session().set(result.data)
    log.info(f"Stored {result.data!r} from {upload.raw_filename!r}.")
    return _json(
        200,
        {
            "statusCode": 200,
            "data": result.data.to_dict(),
            "message": result.message,
        },
    )


@app.route("/packages")
@app.route("/packages/")
@app.route("/packages/<query>")
def search(query=None):
    query = request.query.getunicode("q") or query
    result = service.search(query)
    if not result.success:
        return _failure(result)
    return _json(200, [identity.to_dict() for identity in result.data])


@app.route("/package/<package_id>")
@app.route("/package/<package_id>/")
def package_versions(package_id):
    result = service.list_versions(package_id)
    if not result.success:
        return _failure(result)
    _session().set_many(pkg.identity for pkg in result.data)
    return _json(200, [pkg.to_dict() for pkg in result.data])


@app.route("/session/packages")
def session_packages():
    return _json(200, [identity.to_dict() for identity in _session().get()])
