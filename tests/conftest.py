import collections
import hashlib
import io
import json
import zipfile

import aiohttp
import pytest
from aiohttp import web

from craftlaunch.platform_info import CurrentPlatform

MANIFEST_PATH = '/mc/game/version_manifest_v2.json'

LINUX = CurrentPlatform('linux', 'x64', '6.1.0')
WINDOWS = CurrentPlatform('windows', 'x64', '10.0.19045')
MACOS_ARM = CurrentPlatform('osx', 'arm64', '14.2')


def sha1(data: bytes) -> str:
    return hashlib.sha1(data).hexdigest()


def make_jar(entries) -> bytes:
    """Builds an in-memory zip archive from a ``{name: bytes}`` mapping."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, 'w') as jar:
        for name, content in entries.items():
            jar.writestr(name, content)
    return buffer.getvalue()


class FakeMojang:
    """A local stand-in for the Mojang, Ely.by and Microsoft endpoints."""

    def __init__(self):
        self.files = {}
        self.sequences = collections.defaultdict(list)
        self.json_handlers = {}
        self.hits = collections.Counter()
        self.versions = []
        self.latest = {}
        self.server = None

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))

    @property
    def manifest_url(self) -> str:
        return self.url(MANIFEST_PATH)

    def add(self, path: str, data: bytes) -> str:
        self.files[path] = data
        return self.url(path)

    def add_json(self, path: str, data) -> str:
        return self.add(path, json.dumps(data).encode())

    def add_sequence(self, path: str, *bodies: bytes) -> str:
        """Serves ``bodies`` one per request, then falls back to ``files``."""
        self.sequences[path].extend(bodies)
        return self.url(path)

    def publish_version(self, data, version_type='release') -> str:
        raw = json.dumps(data).encode()
        url = self.add(f"/v1/packages/{data['id']}.json", raw)
        self.versions.append({
            'id': data['id'],
            'type': version_type,
            'url': url,
            'sha1': sha1(raw),
            'releaseTime': '2023-12-07T12:56:20+00:00',
        })
        return url

    def requests_under(self, prefix: str) -> int:
        return sum(count for path, count in self.hits.items() if path.startswith(prefix))

    async def handle(self, request: web.Request) -> web.StreamResponse:
        path = request.path
        self.hits[path] += 1
        if path in self.json_handlers:
            status, body = await self.json_handlers[path](request)
            return web.json_response(body, status=status)
        if path == MANIFEST_PATH:
            return web.json_response({'latest': self.latest, 'versions': self.versions})
        if self.sequences.get(path):
            return web.Response(body=self.sequences[path].pop(0))
        if path not in self.files:
            return web.Response(status=404)
        return web.Response(body=self.files[path])


@pytest.fixture
async def fake_mojang(aiohttp_server):
    fake = FakeMojang()
    app = web.Application()
    app.router.add_route('*', '/{tail:.*}', fake.handle)
    fake.server = await aiohttp_server(app)
    return fake


@pytest.fixture
async def session():
    async with aiohttp.ClientSession() as client_session:
        yield client_session


def vanilla_version(fake: FakeMojang, version_id='1.20.4', *, assets=None, natives_jar=None):
    """Publishes a small but complete modern version on ``fake`` and returns its JSON."""
    client = make_jar({'net/minecraft/client/Main.class': b'client'})
    lib = make_jar({'com/example/Lib.class': b'lib'})
    assets = assets if assets is not None else {
        'minecraft/sounds/a.ogg': b'sound-a',
        'minecraft/lang/en_us.json': b'{"lang": true}',
    }
    index = {'objects': {name: {'hash': sha1(body), 'size': len(body)} for name, body in assets.items()}}
    for body in assets.values():
        fake.add(f"/assets/{sha1(body)[:2]}/{sha1(body)}", body)
    index_raw = json.dumps(index).encode()
    log_config = b'<Configuration/>'

    natives_jar = natives_jar if natives_jar is not None else make_jar({
        'liblwjgl.so': b'native',
        'META-INF/MANIFEST.MF': b'Manifest-Version: 1.0',
    })

    data = {
        'id': version_id,
        'type': 'release',
        'mainClass': 'net.minecraft.client.main.Main',
        'assets': '12',
        'assetIndex': {'id': '12', 'sha1': sha1(index_raw), 'size': len(index_raw),
                       'url': fake.add('/indexes/12.json', index_raw)},
        'downloads': {'client': {'sha1': sha1(client), 'size': len(client),
                                 'url': fake.add(f"/client/{version_id}.jar", client)}},
        'logging': {'client': {'argument': '-Dlog4j.configurationFile=${path}',
                               'file': {'id': 'client-1.12.xml', 'sha1': sha1(log_config),
                                        'size': len(log_config),
                                        'url': fake.add('/log/client-1.12.xml', log_config)}}},
        'libraries': [
            {'name': 'com.example:lib:1.0',
             'downloads': {'artifact': {'path': 'com/example/lib/1.0/lib-1.0.jar', 'sha1': sha1(lib),
                                        'size': len(lib),
                                        'url': fake.add('/libs/lib-1.0.jar', lib)}}},
            {'name': 'org.lwjgl:lwjgl:3.3.3:natives-linux',
             'downloads': {'artifact': {'path': 'org/lwjgl/lwjgl/3.3.3/lwjgl-3.3.3-natives-linux.jar',
                                        'sha1': sha1(natives_jar), 'size': len(natives_jar),
                                        'url': fake.add('/libs/lwjgl-natives-linux.jar', natives_jar)}},
             'rules': [{'action': 'allow', 'os': {'name': 'linux'}}]},
        ],
        'arguments': {
            'game': ['--username', '${auth_player_name}', '--version', '${version_name}',
                     '--assetIndex', '${assets_index_name}', '--accessToken', '${auth_access_token}',
                     {'rules': [{'action': 'allow', 'features': {'is_demo_user': True}}], 'value': '--demo'}],
            'jvm': ['-cp', '${classpath}'],
        },
    }
    fake.publish_version(data)
    fake.latest = {'release': version_id, 'snapshot': version_id}
    return data
