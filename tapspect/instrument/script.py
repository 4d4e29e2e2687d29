"""Page-context instrumentation script.

The script wraps the five console functions, ``fetch`` and the
``XMLHttpRequest`` prototype, and forwards JSON messages through two CDP
bindings. It is added with ``Page.addScriptToEvaluateOnNewDocument`` so it
runs before any page script in every new document.
"""

from typing import Optional

CONSOLE_CHANNEL = "consoleLog"
NETWORK_CHANNEL = "networkLog"
CHANNELS = (CONSOLE_CHANNEL, NETWORK_CHANNEL)

REQUEST_BODY_LIMIT = 32000
RESPONSE_BODY_LIMIT = 64000
TRUNCATION_MARKER = "… (truncated)"

INSTALL_FLAG = "__tapspectInstalled"
RESTORE_FUNCTION = "__tapspectRestore"


def truncate_body(text: Optional[str], limit: int) -> Optional[str]:
    """Same rule the page applies before sending: cut to ``limit`` and mark.

    Lengths are UTF-16 code units, as JavaScript counts them, so a cut can
    split a surrogate pair exactly like the page does.
    """
    if not text:
        return text
    encoded = text.encode("utf-16-le", "surrogatepass")
    if len(encoded) // 2 > limit:
        return encoded[:limit * 2].decode("utf-16-le", "surrogatepass") + TRUNCATION_MARKER
    return text


_SCRIPT_TEMPLATE = r"""
(function() {
    if (window.__INSTALL_FLAG__) { return; }
    window.__INSTALL_FLAG__ = true;

    var channels = {
        __CONSOLE__: window.__CONSOLE__,
        __NETWORK__: window.__NETWORK__
    };

    function post(channel, message) {
        try {
            var send = channels[channel] || window[channel];
            if (typeof send === 'function') {
                send(JSON.stringify(message));
            }
        } catch (e) {}
    }

    var LEVELS = ['log', 'info', 'warn', 'error', 'debug'];
    var originalConsole = {};
    LEVELS.forEach(function(level) { originalConsole[level] = console[level]; });

    function stringify(args) {
        return Array.prototype.map.call(args, function(arg) {
            if (arg === null) return 'null';
            if (arg === undefined) return 'undefined';
            if (typeof arg === 'object') {
                try {
                    var json = JSON.stringify(arg, null, 2);
                    return json === undefined ? String(arg) : json;
                } catch (e) {
                    try { return String(arg); } catch (e2) { return '[object]'; }
                }
            }
            try { return String(arg); } catch (e) { return '[unprintable]'; }
        }).join(' ');
    }

    LEVELS.forEach(function(level) {
        console[level] = function() {
            var result = originalConsole[level].apply(console, arguments);
            try {
                post('__CONSOLE__', { level: level, message: stringify(arguments) });
            } catch (e) {}
            return result;
        };
    });

    function onError(e) {
        try {
            post('__CONSOLE__', {
                level: 'error',
                message: e.message + ' at ' + e.filename + ':' + e.lineno + ':' + e.colno
            });
        } catch (err) {}
    }

    function onRejection(e) {
        try {
            var reason = e.reason;
            var text = (reason && reason.message) || reason || 'unknown';
            post('__CONSOLE__', {
                level: 'error',
                message: 'Unhandled Promise Rejection: ' + text
            });
        } catch (err) {}
    }

    window.addEventListener('error', onError);
    window.addEventListener('unhandledrejection', onRejection);

    function headersToObj(headers) {
        var obj = {};
        try {
            if (headers && typeof headers.forEach === 'function') {
                headers.forEach(function(v, k) { obj[k] = String(v); });
            } else if (headers && typeof headers === 'object') {
                Object.keys(headers).forEach(function(k) { obj[k] = String(headers[k]); });
            }
        } catch (e) {}
        return obj;
    }

    function truncate(str, max) {
        if (!str) return str;
        return str.length > max ? str.substring(0, max) + '__MARKER__' : str;
    }

    function serializeBody(body) {
        if (body === undefined || body === null || body === '') return null;
        if (typeof body === 'string') return truncate(body, __REQUEST_LIMIT__);
        try {
            var json = JSON.stringify(body);
            return json === undefined ? '[binary]' : truncate(json, __REQUEST_LIMIT__);
        } catch (e) {
            return '[binary]';
        }
    }

    var originalFetch = window.fetch;
    if (typeof originalFetch === 'function') {
        window.fetch = function(input, init) {
            var startTime = performance.now();
            var method = 'GET', url = '', reqHeaders = {}, reqBody = null;
            try {
                init = init || {};
                var isRequest = (typeof Request !== 'undefined') && (input instanceof Request);
                url = isRequest ? input.url : String(input);
                method = String(init.method || (isRequest ? input.method : 'GET')).toUpperCase();
                if (init.headers) {
                    reqHeaders = headersToObj(init.headers);
                } else if (isRequest) {
                    reqHeaders = headersToObj(input.headers);
                }
                reqBody = serializeBody(init.body);
            } catch (e) {}

            function elapsed() { return (performance.now() - startTime) / 1000; }

            return originalFetch.apply(this, arguments).then(function(response) {
                var duration = elapsed();
                var resHeaders = {}, contentType = '', cloned = null;
                try {
                    resHeaders = headersToObj(response.headers);
                    contentType = response.headers.get('content-type') || '';
                    cloned = response.clone();
                } catch (e) {}

                function report(bodyText) {
                    post('__NETWORK__', {
                        method: method, url: url, status: response.status, duration: duration,
                        requestHeaders: reqHeaders, requestBody: reqBody,
                        responseHeaders: resHeaders, responseBody: bodyText,
                        responseContentType: contentType
                    });
                }

                if (cloned) {
                    cloned.text().then(function(text) {
                        report(truncate(text, __RESPONSE_LIMIT__));
                    }, function() {
                        report(null);
                    });
                } else {
                    report(null);
                }
                return response;
            }, function(error) {
                post('__NETWORK__', {
                    method: method, url: url, status: 0, duration: elapsed(),
                    requestHeaders: reqHeaders, requestBody: reqBody,
                    responseHeaders: null, responseBody: null, responseContentType: null
                });
                throw error;
            });
        };
    }

    var xhrProto = XMLHttpRequest.prototype;
    var originalOpen = xhrProto.open;
    var originalSend = xhrProto.send;
    var originalSetHeader = xhrProto.setRequestHeader;

    function detachListener(xhr) {
        try {
            if (xhr.__tapspectListener) {
                xhr.removeEventListener('loadend', xhr.__tapspectListener);
                xhr.__tapspectListener = null;
            }
        } catch (e) {}
    }

    xhrProto.open = function(method, url) {
        try {
            // open() restarts the object without firing loadend for the old
            // exchange; a finished one whose loadend is still being dispatched
            // is reported now, while its status and body are readable.
            var pending = this.__tapspectListener;
            detachListener(this);
            if (pending && this.readyState === 4) pending();
            this.__tapspectMethod = String(method || 'GET').toUpperCase();
            this.__tapspectURL = String(url);
            this.__tapspectHeaders = {};
        } catch (e) {}
        return originalOpen.apply(this, arguments);
    };

    xhrProto.setRequestHeader = function(name, value) {
        try {
            if (this.__tapspectHeaders) this.__tapspectHeaders[name] = String(value);
        } catch (e) {}
        return originalSetHeader.apply(this, arguments);
    };

    xhrProto.send = function(body) {
        var xhr = this;
        try {
            detachListener(xhr);
            var startTime = performance.now();
            var method = xhr.__tapspectMethod || 'GET';
            var url = xhr.__tapspectURL || '';
            var reqHeaders = xhr.__tapspectHeaders || {};
            var reqBody = serializeBody(body);
            var listener = function() {
                xhr.__tapspectListener = null;
                try {
                    var resHeaders = {};
                    try {
                        var raw = xhr.getAllResponseHeaders() || '';
                        raw.trim().split(/\r?\n/).forEach(function(line) {
                            var parts = line.split(': ');
                            if (parts.length >= 2) resHeaders[parts[0]] = parts.slice(1).join(': ');
                        });
                    } catch (e) {}
                    var contentType = '';
                    try { contentType = xhr.getResponseHeader('content-type') || ''; } catch (e) {}
                    var responseBody = null;
                    try { responseBody = truncate(xhr.responseText, __RESPONSE_LIMIT__); } catch (e) {}
                    post('__NETWORK__', {
                        method: method,
                        url: url,
                        status: xhr.status,
                        duration: (performance.now() - startTime) / 1000,
                        requestHeaders: reqHeaders,
                        requestBody: reqBody,
                        responseHeaders: resHeaders,
                        responseBody: responseBody,
                        responseContentType: contentType
                    });
                } catch (e) {}
            };
            xhr.__tapspectListener = listener;
            xhr.addEventListener('loadend', listener, { once: true });
        } catch (e) {}
        return originalSend.apply(this, arguments);
    };

    window.__RESTORE__ = function() {
        LEVELS.forEach(function(level) { console[level] = originalConsole[level]; });
        if (typeof originalFetch === 'function') { window.fetch = originalFetch; }
        xhrProto.open = originalOpen;
        xhrProto.send = originalSend;
        xhrProto.setRequestHeader = originalSetHeader;
        window.removeEventListener('error', onError);
        window.removeEventListener('unhandledrejection', onRejection);
        window.__INSTALL_FLAG__ = false;
    };
})();
"""


def build_instrumentation_script() -> str:
    """Render the script with the channel names and limits filled in."""
    replacements = {
        "__INSTALL_FLAG__": INSTALL_FLAG,
        "__RESTORE__": RESTORE_FUNCTION,
        "__CONSOLE__": CONSOLE_CHANNEL,
        "__NETWORK__": NETWORK_CHANNEL,
        "__REQUEST_LIMIT__": str(REQUEST_BODY_LIMIT),
        "__RESPONSE_LIMIT__": str(RESPONSE_BODY_LIMIT),
        "__MARKER__": TRUNCATION_MARKER,
    }
    script = _SCRIPT_TEMPLATE
    for placeholder, value in replacements.items():
        script = script.replace(placeholder, value)
    return script.strip()


INSTRUMENTATION_SCRIPT = build_instrumentation_script()
