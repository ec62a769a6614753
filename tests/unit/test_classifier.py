from rpc_stats.errors import RpcApplicationError
from rpc_stats.filters.base import Return, RpcRequest, Throw
from rpc_stats.filters.classifier import (
    DEFAULT_CLASSIFIER,
    RPC_ERRORS_AS_FAILURES,
    ErrorsAsSuccesses,
    ReqRep,
    ResponseClass,
    ResponseClassifier,
)


class NotFound(RpcApplicationError):
    pass


REQ = RpcRequest("get_user", args={"id": 1})


def test_default_classifier():
    assert DEFAULT_CLASSIFIER.classify(ReqRep(REQ, Return(1))) is ResponseClass.SUCCESSFUL
    assert DEFAULT_CLASSIFIER.classify(ReqRep(REQ, Return(None))) is ResponseClass.SUCCESSFUL
    assert DEFAULT_CLASSIFIER.classify(ReqRep(REQ, Throw(ValueError()))) is ResponseClass.FAILED


def test_errors_as_successes_is_partial():
    clf = ErrorsAsSuccesses(NotFound)
    assert clf.classify(ReqRep(REQ, Throw(NotFound("nope")))) is ResponseClass.SUCCESSFUL
    assert clf.classify(ReqRep(REQ, Throw(ValueError()))) is None
    assert clf.classify(ReqRep(REQ, Return("ok"))) is None
    # Undefined falls back to the default policy.
    assert clf.apply_or_default(ReqRep(REQ, Throw(ValueError()))) is ResponseClass.FAILED
    assert clf.apply_or_default(ReqRep(REQ, Return("ok"))) is ResponseClass.SUCCESSFUL


def test_rpc_errors_as_failures():
    assert RPC_ERRORS_AS_FAILURES.classify(ReqRep(REQ, Throw(NotFound()))) is ResponseClass.FAILED
    assert RPC_ERRORS_AS_FAILURES.classify(ReqRep(REQ, Throw(KeyError()))) is None


def test_or_else_first_defined_wins():
    def empty_result_fails(req_rep):
        if isinstance(req_rep.response, Return) and req_rep.response.value == []:
            return ResponseClass.FAILED
        return None

    clf = ErrorsAsSuccesses(NotFound).or_else(empty_result_fails)
    assert clf.classify(ReqRep(REQ, Throw(NotFound()))) is ResponseClass.SUCCESSFUL
    assert clf.classify(ReqRep(REQ, Return([]))) is ResponseClass.FAILED
    assert clf.classify(ReqRep(REQ, Return([1]))) is None
    assert "or_else" in clf.name


def test_classifier_can_use_request_parameters():
    def health_never_fails(req_rep):
        if req_rep.request.method_name == "health":
            return ResponseClass.SUCCESSFUL
        return None

    clf = ResponseClassifier.named("HealthNeverFails", health_never_fails)
    assert clf(ReqRep(RpcRequest("health"), Throw(TimeoutError()))) is ResponseClass.SUCCESSFUL
    assert clf.apply_or_default(ReqRep(RpcRequest("other"), Throw(TimeoutError()))) is ResponseClass.FAILED


def test_rpc_application_error_code():
    err = NotFound("missing", code=404)
    assert err.code == 404
    assert str(err) == "missing"
