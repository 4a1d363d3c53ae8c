from craftlaunch.replacer import replace_all_placeholders, replace_placeholders, replace_text


def test_replace_text():
    assert replace_text('a-b-a', {'a': 'x', 'b': 'y'}) == 'x-y-x'
    assert replace_text('unchanged', {}) == 'unchanged'
    assert replace_text(42, {'4': '5'}) == 42


def test_placeholders():
    variables = {'auth_player_name': 'Alice', 'width': 854}
    assert replace_placeholders('--username ${auth_player_name}', variables) == '--username Alice'
    assert replace_placeholders('${width}x${height}', variables) == '854x${height}'


def test_replace_all_placeholders():
    assert replace_all_placeholders(['--gameDir', '${game_directory}', '${x}${x}'],
                                    {'game_directory': '/games', 'x': 'ab'}) == ['--gameDir', '/games', 'abab']


def test_placeholders_are_substituted_once():
    variables = {'auth_player_name': '${auth_access_token}', 'auth_access_token': 'SECRET'}
    assert replace_placeholders('${auth_player_name}', variables) == '${auth_access_token}'
    assert replace_all_placeholders(['${auth_access_token}', '${auth_player_name}'], variables) == \
        ['SECRET', '${auth_access_token}']
