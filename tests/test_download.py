import pytest

from craftlaunch.download import ensure, file_matches, local_path, maven_path
from craftlaunch.errors import ChecksumMismatch, DownloadError

from conftest import sha1

GOOD = b'the real content'
BAD = b'corrupted content'


async def test_ensure_downloads_and_verifies(fake_mojang, session, tmp_path):
    url = fake_mojang.add('/files/a.bin', GOOD)
    dest = tmp_path / 'sub' / 'a.bin'

    assert await ensure(session, url, dest, sha1(GOOD), retry_delay=0)
    assert dest.read_bytes() == GOOD
    assert await file_matches(dest, sha1(GOOD))


async def test_ensure_is_idempotent(fake_mojang, session, tmp_path):
    url = fake_mojang.add('/files/a.bin', GOOD)
    dest = tmp_path / 'a.bin'

    await ensure(session, url, dest, sha1(GOOD), retry_delay=0)
    assert fake_mojang.hits['/files/a.bin'] == 1
    assert not await ensure(session, url, dest, sha1(GOOD), retry_delay=0)
    assert fake_mojang.hits['/files/a.bin'] == 1


async def test_existing_file_without_checksum_is_kept(fake_mojang, session, tmp_path):
    url = fake_mojang.add('/files/a.bin', GOOD)
    dest = tmp_path / 'a.bin'
    dest.write_bytes(b'local copy')

    assert not await ensure(session, url, dest, retry_delay=0)
    assert dest.read_bytes() == b'local copy'
    assert fake_mojang.hits['/files/a.bin'] == 0


async def test_stale_file_is_replaced(fake_mojang, session, tmp_path):
    url = fake_mojang.add('/files/a.bin', GOOD)
    dest = tmp_path / 'a.bin'
    dest.write_bytes(BAD)

    assert await ensure(session, url, dest, sha1(GOOD), retry_delay=0)
    assert dest.read_bytes() == GOOD


async def test_retry_after_two_bad_bodies(fake_mojang, session, tmp_path):
    fake_mojang.add('/files/flaky.bin', GOOD)
    url = fake_mojang.add_sequence('/files/flaky.bin', BAD, BAD)
    dest = tmp_path / 'flaky.bin'

    assert await ensure(session, url, dest, sha1(GOOD), retry_delay=0)
    assert dest.read_bytes() == GOOD
    assert fake_mojang.hits['/files/flaky.bin'] == 3


async def test_three_bad_bodies_raise_and_leave_no_file(fake_mojang, session, tmp_path):
    url = fake_mojang.add('/files/broken.bin', BAD)
    dest = tmp_path / 'broken.bin'

    with pytest.raises(ChecksumMismatch) as excinfo:
        await ensure(session, url, dest, sha1(GOOD), retry_delay=0)

    assert excinfo.value.expected == sha1(GOOD)
    assert excinfo.value.actual == sha1(BAD)
    assert fake_mojang.hits['/files/broken.bin'] == 3
    assert not dest.exists()
    assert list(tmp_path.iterdir()) == []


async def test_http_error_status(fake_mojang, session, tmp_path):
    with pytest.raises(DownloadError) as excinfo:
        await ensure(session, fake_mojang.url('/missing.bin'), tmp_path / 'missing.bin', retry_delay=0)
    assert excinfo.value.status == 404
    assert fake_mojang.hits['/missing.bin'] == 3


async def test_transform_is_applied_before_verification(fake_mojang, session, tmp_path):
    url = fake_mojang.add('/files/upper.bin', GOOD.upper())
    dest = tmp_path / 'lower.bin'

    await ensure(session, url, dest, sha1(GOOD), transform=bytes.lower, retry_delay=0)
    assert dest.read_bytes() == GOOD


@pytest.mark.parametrize("name, classifier, expected", [
    ('com.mojang:brigadier:1.0.18', None, 'com/mojang/brigadier/1.0.18/brigadier-1.0.18.jar'),
    ('org.lwjgl:lwjgl:3.3.3:natives-linux', None, 'org/lwjgl/lwjgl/3.3.3/lwjgl-3.3.3-natives-linux.jar'),
    ('tv.twitch:twitch-platform:5.16', 'natives-windows-64',
     'tv/twitch/twitch-platform/5.16/twitch-platform-5.16-natives-windows-64.jar'),
    ('net.sf:zip:1.0@zip', None, 'net/sf/zip/1.0/zip-1.0.zip'),
])
def test_maven_path(name, classifier, expected):
    assert maven_path(name, classifier) == expected


def test_maven_path_rejects_short_names():
    with pytest.raises(ValueError):
        maven_path('only:two')


def test_local_path(tmp_path):
    assert local_path(tmp_path, 'a/b/c.jar') == tmp_path / 'a' / 'b' / 'c.jar'
